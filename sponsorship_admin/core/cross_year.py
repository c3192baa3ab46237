from typing import Optional

CROSS_YEAR_WARNING = (
    "This record belongs to {record_year}, but you're viewing {selected_year}. "
    "Changes may not be visible in the current view."
)


def get_cross_year_warning(record_year: Optional[str], selected_year: Optional[str]) -> Optional[str]:
    """Advisory shown when a record comes from another year than the one being viewed. Never blocks."""
    if not record_year or record_year == selected_year:
        return None
    return CROSS_YEAR_WARNING.format(record_year=record_year, selected_year=selected_year or "no academic year")
