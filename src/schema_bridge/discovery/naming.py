"""Naming helpers for inferred relationships."""

import re

_ALREADY_PLURAL = ("ses", "xes", "zes", "ches", "shes", "ies", "ves")


def to_camel_case(name: str) -> str:
    """Convert ``snake_case``, ``kebab-case`` or spaced names to camelCase.

    Example:
        to_camel_case("user_roles")  # 'userRoles'
        to_camel_case("Order")       # 'order'
    """
    parts = [p for p in re.split(r"[_\-\s]+", name) if p]
    if not parts:
        return ""
    head = parts[0][:1].lower() + parts[0][1:]
    return head + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def pluralize(word: str) -> str:
    """Pluralize an English noun with a few suffix rules.

    Example:
        pluralize("category")  # 'categories'
        pluralize("box")       # 'boxes'
        pluralize("users")     # 'users'
    """
    lower = word.lower()
    if lower.endswith(_ALREADY_PLURAL):
        return word
    if lower.endswith("ss"):
        return word + "es"
    if lower.endswith("s"):
        return word
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        return word[:-1] + "ies"
    if lower.endswith(("sh", "ch", "x", "z")):
        return word + "es"
    return word + "s"


def relationship_name(column: str) -> str:
    """Name a forward relationship after its foreign key column.

    Strips a trailing ``_id``/``Id`` and camelCases the rest.

    Example:
        relationship_name("author_id")  # 'author'
        relationship_name("parentId")   # 'parent'
    """
    stripped = re.sub(r"(_id|Id)$", "", column)
    return to_camel_case(stripped or column)


def reverse_relationship_name(table: str, column: str | None = None) -> str:
    """Name a reverse relationship after the referencing table.

    ``column`` disambiguates tables holding several foreign keys to the
    same parent.

    Example:
        reverse_relationship_name("order_item")            # 'orderItems'
        reverse_relationship_name("message", "sender_id")  # 'messagesBySender'
    """
    name = pluralize(to_camel_case(table))
    if column:
        qualifier = relationship_name(column)
        name += "By" + qualifier[:1].upper() + qualifier[1:]
    return name
