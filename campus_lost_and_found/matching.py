from .models import opposite_type


def find_matches(item, all_items, limit=None):
    """Opposite-type items sharing ``item``'s category, in the given order.

    Category comparison is exact and case-sensitive; an empty category never
    matches anything.
    """
    if not item.category:
        return []
    wanted = opposite_type(item.type)
    matches = [
        other for other in all_items
        if other.type == wanted
        and other.category == item.category
        and other.id != item.id
    ]
    if limit:
        return matches[:limit]
    return matches
