"""
Services package - Business logic layer.

This package contains the business logic of campus rides. It operates on the
realtime entity store (and, for the offline queue, on Django models) but is
decoupled from the HTTP/WebSocket layer.

Modules:
    - ride_management: Ride records, status state machine and lifecycle operations
    - matching: Open-request view, accept/decline and the waitlist
    - settlement: Ride completion, ratings, wallet and driver onboarding
    - pricing: Fare and surge calculation
    - offline: Durable queue of bookings made while offline
    - coordinator: One-call-per-action facade used by views and consumers
"""
