def cap_rows_with_metadata(rows: list, max_rows: int) -> tuple[list, bool]:
    """Return rows capped to max_rows along with a truncation flag (0 disables)."""
    if max_rows and len(rows) > max_rows:
        return rows[:max_rows], True
    return rows, False
