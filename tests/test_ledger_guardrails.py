import re
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parent.parent / "stockledger"


def _scan(pattern, allowed):
    violations = []
    for path in PACKAGE_ROOT.rglob("*.py"):
        rel_path = path.relative_to(PACKAGE_ROOT.parent).as_posix()
        if rel_path in allowed:
            continue

        text = path.read_text(encoding="utf-8")
        for match in pattern.finditer(text):
            line_start = text.rfind("\n", 0, match.start()) + 1
            line_end = text.find("\n", match.start())
            if line_end == -1:
                line_end = len(text)
            violations.append(f"{rel_path}: {text[line_start:line_end].strip()}")
    return violations


def test_cached_balance_is_only_written_by_the_item_registry():
    violations = _scan(
        re.compile(r"\.on_hand_quantity\s*(?:[+\-]?=)(?!=)"),
        {"stockledger/services/item_registry.py"},
    )

    assert not violations, (
        "Direct writes to the cached on-hand quantity detected. The cache is a projection "
        "of the ledger; route updates through item_registry.refresh_balance: \n- "
        + "\n- ".join(violations)
    )


def test_cache_refresh_is_driven_by_the_ledger_package():
    allowed = {
        "stockledger/services/item_registry.py",
        "stockledger/services/ledger/_engine.py",
        "stockledger/services/ledger/_reconciliation.py",
        "stockledger/services/ledger/_validation.py",
    }
    violations = _scan(re.compile(r"(?<!def )refresh_balance\("), allowed)

    assert not violations, (
        "refresh_balance called outside the ledger package: \n- " + "\n- ".join(violations)
    )


def test_movements_are_only_constructed_by_the_engine():
    violations = _scan(
        re.compile(r"(?<!class )\bStockMovement\("),
        {"stockledger/services/ledger/_engine.py"},
    )

    assert not violations, (
        "StockMovement rows must be appended through post_transaction or reconcile: \n- "
        + "\n- ".join(violations)
    )
