"""Compiled route table with longest-prefix matching.

Rules are registered during setup, validated, and compiled into an
immutable segment trie when the gateway freezes. Matching walks the
trie once and keeps the deepest node that carries a rule.
"""

from gatehouse.errors import AmbiguousRouteError, ConfigurationError, NotFound
from gatehouse.routing.route import RouteMatch, RouteRule, split_path


class _TrieNode:
    """A node in the prefix trie. Mutable during compilation only."""

    __slots__ = ("children", "rule")

    def __init__(self) -> None:
        # Static segment children: "api" -> node
        self.children: dict[str, _TrieNode] = {}
        # Rule whose prefix ends at this node
        self.rule: RouteRule | None = None


class Router:
    """Compiled router with segment-wise longest-prefix matching.

    ``/api`` matches ``/api`` and ``/api/anything`` but not ``/apix``.
    Every path matches exactly one rule: duplicate prefixes are rejected
    when added, and ``compile()`` requires a root rule ``/``.

    Usage::

        router = Router()
        router.add(RouteRule("/", StaticTarget("./build")))
        router.add(RouteRule("/api", UpstreamTarget(pool)))
        router.compile()
        match = router.match("/api/status")  # remainder "/status"
    """

    __slots__ = ("_compiled", "_root", "_rules")

    def __init__(self) -> None:
        self._root = _TrieNode()
        self._rules: list[RouteRule] = []
        self._compiled = False

    def add(self, rule: RouteRule) -> None:
        """Add a rule. Must be called before compile().

        Raises ``AmbiguousRouteError`` if another rule already owns the
        same normalised prefix.
        """
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        node = self._root
        for segment in split_path(rule.prefix):
            node = node.children.setdefault(segment, _TrieNode())

        if node.rule is not None:
            raise AmbiguousRouteError(rule.prefix)
        node.rule = rule
        self._rules.append(rule)

    @property
    def rules(self) -> list[RouteRule]:
        """All rules, most specific first."""
        return sorted(self._rules, key=lambda r: (-r.depth, r.prefix))

    @property
    def compiled(self) -> bool:
        return self._compiled

    def compile(self) -> None:
        """Validate and freeze the table. No more rules can be added.

        Raises ``ConfigurationError`` when no root rule exists, since some
        paths would then match nothing.
        """
        if self._root.rule is None:
            msg = (
                "Route table has no root rule '/'; paths outside "
                f"{', '.join(r.prefix for r in self.rules) or 'any prefix'} would match nothing."
            )
            raise ConfigurationError(msg)
        self._compiled = True

    def match(self, path: str) -> RouteMatch:
        """Match a request path against the compiled table.

        Returns the ``RouteMatch`` for the longest matching prefix, with
        the part of the path below that prefix as ``remainder``.
        """
        if not self._compiled:
            msg = "Router must be compiled before matching."
            raise RuntimeError(msg)

        parts = split_path(path)
        node = self._root
        best = node.rule
        depth = 0

        for index, part in enumerate(parts):
            child = node.children.get(part)
            if child is None:
                break
            node = child
            if node.rule is not None:
                best = node.rule
                depth = index + 1

        if best is None:
            raise NotFound(f"No route matches {path!r}")

        rest = parts[depth:]
        remainder = "/" + "/".join(rest)
        if rest and path.endswith("/"):
            remainder += "/"
        return RouteMatch(rule=best, path=path, remainder=remainder)
