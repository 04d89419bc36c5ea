import csv
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO
from typing import Any, Mapping, Sequence


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_amount(value: Any, *, allow_negative: bool = False) -> int:
    """Parse a loosely formatted money value into integer cents."""
    if isinstance(value, bool) or value is None:
        raise ValueError("Invalid amount")
    if isinstance(value, (int, float, Decimal)):
        clean = str(value)
    else:
        clean = str(value).strip().replace("€", "").replace("$", "").replace("₹", "")
        clean = clean.replace(" ", "").replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    try:
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except ArithmeticError as exc:
        raise ValueError("Invalid amount") from exc
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def export_transactions(transactions: Sequence[Mapping[str, Any]]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Type", "Amount", "Category", "Description", "Account"])
    for txn in transactions:
        try:
            amount = f"{parse_amount(txn.get('amount')) / 100:.2f}"
        except ValueError:
            amount = "0.00"
        writer.writerow(
            [
                str(txn.get("date") or ""),
                str(txn.get("type") or ""),
                amount,
                sanitize_csv_value(str(txn.get("category") or "")),
                sanitize_csv_value(str(txn.get("description") or "")),
                sanitize_csv_value(str(txn.get("account") or "")),
            ]
        )
    return output.getvalue()
