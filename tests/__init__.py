"""
stockledger Test Suite

Tests are organized by domain:
- test_ledger_*.py: balance replay, concurrency and source guardrails
- test_transaction_coordinator.py: atomic multi-line posting
- test_reconciliation.py / test_count_sessions.py: physical counts
- test_item_registry.py / test_stock_card.py / test_issuance_service.py: registry and reports
- test_api_routes.py / test_cli_commands.py: HTTP and CLI surfaces
"""
