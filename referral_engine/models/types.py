"""
Standard type definitions for database models.

Provides consistent types for monetary and percentage fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for sale amounts, commissions, balances
# Precision: 12 digits total, 2 after decimal point (currency minor units)
# Range: up to 9,999,999,999.99
MoneyType = DECIMAL(12, 2)

# Commission percentage type
# Precision: 7 digits total, 4 after decimal point
# Suitable for: level percentages (e.g., 15.0000, 2.5000, 0.1250)
# Range: 0.0000 to 999.9999
RatePercentType = DECIMAL(7, 4)
