"""
Settlement service.

This module handles:
    - Completing rides (fare debit, bonus, CO2, counters, achievements)
    - Driver ratings
    - Wallet top-ups and driver onboarding
"""

from .achievements import ACHIEVEMENTS, Achievement, evaluate_achievements
from .engine import (
    compute_co2_savings,
    compute_driver_bonus,
    earns_onboarding_bonus,
    settle_ride,
)
from .ratings import submit_rating
from .wallet import add_funds, complete_driver_onboarding, transaction_history

__all__ = [
    "ACHIEVEMENTS",
    "Achievement",
    "evaluate_achievements",
    "compute_co2_savings",
    "compute_driver_bonus",
    "earns_onboarding_bonus",
    "settle_ride",
    "submit_rating",
    "add_funds",
    "complete_driver_onboarding",
    "transaction_history",
]
