"""Simulated wallet top-ups and driver onboarding."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from django.utils import timezone

from realtime.store import EntityStore, UpdateIntent
from services.ride_management.exceptions import PreconditionError
from services.ride_management.profiles import (
    TRANSACTIONS,
    driver_path,
    read_driver,
    read_rider,
    rider_path,
    transaction_path,
)
from services.ride_management.records import Transaction, TransactionDirection
from services.ride_management.ride_lifecycle import RideResult

logger = logging.getLogger(__name__)

TOP_UP_DESCRIPTION = "Funds added to wallet"
VEHICLE_FIELDS = ("make", "model", "license_plate")


def add_funds(
    store: EntityStore,
    rider_id: str,
    amount: float,
    now: Optional[datetime] = None,
) -> RideResult:
    """Credit the rider's wallet and record the transaction."""
    if amount is None or amount <= 0:
        raise PreconditionError("Please enter an amount greater than zero.")

    read_rider(store, rider_id)
    transaction = Transaction(
        id=store.push(TRANSACTIONS),
        direction=TransactionDirection.CREDIT,
        amount=float(amount),
        timestamp=now or timezone.now(),
        description=TOP_UP_DESCRIPTION,
    )
    (
        UpdateIntent()
        .set(transaction_path(transaction.id), transaction.to_record())
        .increment(rider_path(rider_id, "wallet_balance"), float(amount))
        .set(rider_path(rider_id, "transaction_history", transaction.id), True)
        .apply(store)
    )

    balance = read_rider(store, rider_id).wallet_balance
    logger.info("Rider %s topped up %.2f (balance %.2f)", rider_id, amount, balance)
    return RideResult(
        success=True,
        message=f"₹{amount:.2f} added to your wallet.",
        extra={"wallet_balance": balance, "transaction_id": transaction.id},
    )


def transaction_history(store: EntityStore, rider_id: str) -> List[Transaction]:
    """The rider's ledger, newest first."""
    rider = read_rider(store, rider_id)
    transactions = []
    for transaction_id in rider.transaction_history:
        data = store.read(transaction_path(transaction_id))
        if data:
            transactions.append(Transaction.from_record(data))
    transactions.sort(key=lambda transaction: transaction.timestamp, reverse=True)
    return transactions


def complete_driver_onboarding(
    store: EntityStore,
    driver_id: str,
    vehicle_details: Dict[str, str],
    is_ev: bool = False,
) -> RideResult:
    """Store the vehicle and mark the driver verified."""
    missing = [name for name in VEHICLE_FIELDS if not (vehicle_details or {}).get(name)]
    if missing:
        raise PreconditionError(f"Missing vehicle details: {', '.join(missing)}")

    read_driver(store, driver_id)
    (
        UpdateIntent()
        .set(driver_path(driver_id, "vehicle_details"), {name: vehicle_details[name] for name in VEHICLE_FIELDS})
        .set(driver_path(driver_id, "is_ev"), bool(is_ev))
        .set(driver_path(driver_id, "has_completed_onboarding"), True)
        .set(driver_path(driver_id, "is_verified"), True)
        .apply(store)
    )
    logger.info("Driver %s completed onboarding (ev=%s)", driver_id, is_ev)
    return RideResult(success=True, message="Onboarding complete. You can now go online.")
