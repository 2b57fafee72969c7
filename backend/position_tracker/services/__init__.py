# backend/position_tracker/services/__init__.py
"""
Service layer for business logic.

Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters (not via Depends)

Architecture:
    services/
    ├── __init__.py              # This file
    ├── exceptions.py            # Domain exceptions
    ├── market_data/             # Market data package
    │   ├── base.py              # Abstract provider interface + registry
    │   ├── yahoo.py             # Yahoo Finance implementation
    │   ├── price_service.py     # Stored price history
    │   └── backfill.py          # Concurrent backfill coordinator
    └── positions/               # Position engine
        ├── types.py             # Engine data types
        ├── ledger.py            # FIFO lot ledger
        ├── calculators.py       # Transaction rules
        ├── simulator.py         # Per-instrument daily walk
        ├── assembler.py         # Multi-instrument assembly
        └── service.py           # Orchestrator
"""
