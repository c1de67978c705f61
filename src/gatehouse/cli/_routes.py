"""``gatehouse routes``: list the compiled route table.

Prints every rule deepest prefix first, which is also the order the
longest-prefix match prefers them.
"""

import argparse
import sys

from gatehouse.cli import EXIT_CONFIG
from gatehouse.cli._resolve import resolve_gateway
from gatehouse.errors import ConfigurationError
from gatehouse.routing.route import RouteRule, StaticTarget


def run_routes(args: argparse.Namespace) -> None:
    """Print a table of PREFIX, TARGET and DETAIL for the gateway."""
    gateway = resolve_gateway(args.app)
    try:
        rules = gateway.rules
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_CONFIG) from exc

    rows = [_describe(rule) for rule in rules]

    # Column widths
    max_prefix = max(max(len(r[0]) for r in rows), 6)  # "PREFIX" header
    max_kind = max(max(len(r[1]) for r in rows), 6)  # "TARGET" header

    fmt = f"{{:<{max_prefix}}}  {{:<{max_kind}}}  {{}}"
    print(fmt.format("PREFIX", "TARGET", "DETAIL"))
    sep_len = max_prefix + max_kind + 4 + max(len(r[2]) for r in rows)
    print("-" * min(sep_len, 80))
    for prefix, kind, detail in rows:
        print(fmt.format(prefix, kind, detail))


def _describe(rule: RouteRule) -> tuple[str, str, str]:
    target = rule.target
    if isinstance(target, StaticTarget):
        detail = str(target.directory)
        if target.fallback:
            detail += f" (fallback {target.index})"
        return rule.prefix, "static", detail

    members = ", ".join(str(m) for m in target.pool.members) or "no members yet"
    detail = f"pool {target.pool.name!r}: {members}"
    if target.strip_prefix and rule.prefix != "/":
        detail += f" (strip {rule.prefix})"
    return rule.prefix, "upstream", detail
