"""Select which stacks to build from a ``-c stacks=...`` filter expression.

Supported forms::

    cdk deploy                                      # everything
    cdk deploy -c stacks=NetworkStack,DatabaseStack # exact names
    cdk deploy -c stacks=Network*                   # prefix match
"""
from typing import Iterable, Mapping, Optional, Set

from settings import ConfigurationError

WILDCARD = "*"


def _matches(pattern: str, name: str) -> bool:
    if pattern.endswith(WILDCARD):
        return name.startswith(pattern[:-1])
    return name == pattern


def select_stacks(all_names: Iterable[str], filter_expr: Optional[str]) -> Set[str]:
    names = list(all_names)
    if filter_expr is None or not filter_expr.strip():
        return set(names)

    selected = set()
    for pattern in (p.strip() for p in filter_expr.split(",")):
        if not pattern:
            continue
        if WILDCARD in pattern[:-1]:
            raise ConfigurationError(
                f"Stack pattern {pattern!r} may only use a single trailing '{WILDCARD}'"
            )
        matched = {name for name in names if _matches(pattern, name)}
        if not matched:
            raise ConfigurationError(f"Stack pattern {pattern!r} matches no stack")
        selected |= matched
    return selected


def with_upstream(selected: Iterable[str], dependencies: Mapping[str, Iterable[str]]) -> Set[str]:
    """Expand a selection with every stack it transitively depends on."""
    required = set()
    pending = list(selected)
    while pending:
        name = pending.pop()
        if name in required:
            continue
        required.add(name)
        pending.extend(dependencies.get(name, ()))
    return required
