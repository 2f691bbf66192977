"""Compiler for the selector query language used by HTML feeds.

A query is a CSS selector extended with extraction modifiers and
post-processing operations::

    .post h2 a::attr(href)
    time::text/@split(' ')/@get(0)
    script[type="application/ld+json"]::text/@json-load() headline::text
    @ns .item, .teaser

Grammar elements are recognized left to right outside quoted strings:

* ``@name `` at the start of an alternative evaluates the rest against the
  namespace element registered as ``name`` instead of the root document.
* ``,`` outside quotes and parentheses starts a new alternative.
* ``:contains(arg)`` narrows the current result set to elements whose text
  contains ``arg``; an argument written ``/pattern/flags`` is a regex.
* ``::text``, ``::inner-html``, ``::outer-html`` and ``::attr(name)`` choose
  how the matched element yields a value.
* ``/@op(args)`` appends a post-processing operation.

Anything else is selector text. Malformed input never raises: unknown
tokens stay in the selector and unterminated argument lists run to the end
of the string.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Iterator, List, Optional, Tuple, Union


class ExtractionMode(str, Enum):
    """How a matched element yields a scalar value."""
    TEXT = "text"
    INNER_HTML = "inner-html"
    OUTER_HTML = "outer-html"
    ATTR = "attr"


class StepKind(str, Enum):
    """Kinds of steps in a selector chain."""
    SELECT = "select"
    CONTAINS = "contains"


POST_OPS = frozenset({
    'append', 'prepend', 'split', 'join', 'slice', 'get', 'filter', 'json-load',
})

_MODE_TOKENS = (
    ('::inner-html', ExtractionMode.INNER_HTML),
    ('::outer-html', ExtractionMode.OUTER_HTML),
    ('::text', ExtractionMode.TEXT),
)

_NAMESPACE_RE = re.compile(r'@([A-Za-z_][\w-]*)(?:\s+|(?=,)|$)')
_OP_RE = re.compile(r'/@([a-z][a-z-]*)\(')


@dataclass(frozen=True)
class QueryStep:
    """One selector-chain segment or filter."""
    kind: StepKind
    value: Any


@dataclass(frozen=True)
class PostOp:
    """A transformation applied to an extracted value."""
    name: str
    args: Tuple[Any, ...] = ()

    def arg(self, index: int, default: Any = None) -> Any:
        if index < len(self.args) and self.args[index] is not None:
            return self.args[index]
        return default


@dataclass
class CompiledQuery:
    """A single alternative of a compiled query string."""
    namespace: Optional[str] = None
    steps: List[QueryStep] = field(default_factory=list)
    mode: Optional[ExtractionMode] = None
    attr: Optional[str] = None
    ops: List[PostOp] = field(default_factory=list)
    # Query run against the synthetic node produced by a trailing json-load
    then: Optional['CompiledQuery'] = None

    @property
    def selectors(self) -> List[str]:
        return [step.value for step in self.steps if step.kind == StepKind.SELECT]

    @property
    def is_empty(self) -> bool:
        return not (self.namespace or self.steps or self.mode or self.ops or self.then)

    @property
    def ends_with_json(self) -> bool:
        return bool(self.ops) and self.ops[-1].name == 'json-load'


@dataclass(frozen=True)
class QueryPlan:
    """Compiled form of a query string: ordered alternatives, first non-empty wins."""
    source: str
    alternatives: Tuple[CompiledQuery, ...] = ()

    is_compiled = True

    def __iter__(self) -> Iterator[CompiledQuery]:
        return iter(self.alternatives)

    def __len__(self) -> int:
        return len(self.alternatives)

    def __bool__(self) -> bool:
        return bool(self.alternatives)


QueryLike = Union[None, str, QueryPlan, CompiledQuery]


class _QueryParser:
    """Single pass scanner turning a query string into alternatives."""

    def __init__(self, raw: str):
        self.raw = raw
        self.pos = 0

    def parse(self) -> List[CompiledQuery]:
        alternatives = []
        more = True
        while more:
            plan, more = self._parse_plan(allow_namespace=True)
            if not plan.is_empty:
                alternatives.append(plan)
        return alternatives

    def _skip_whitespace(self):
        while self.pos < len(self.raw) and self.raw[self.pos].isspace():
            self.pos += 1

    def _parse_plan(self, allow_namespace: bool) -> Tuple[CompiledQuery, bool]:
        """Parse one alternative; returns it and whether a top-level comma followed."""
        raw = self.raw
        plan = CompiledQuery()
        buf: List[str] = []
        quote: Optional[str] = None
        depth = 0

        def flush():
            text = ''.join(buf).strip()
            if text:
                plan.steps.append(QueryStep(StepKind.SELECT, text))
            buf.clear()

        self._skip_whitespace()
        if allow_namespace:
            match = _NAMESPACE_RE.match(raw, self.pos)
            if match:
                plan.namespace = match.group(1)
                self.pos = match.end()

        while self.pos < len(raw):
            c = raw[self.pos]

            if quote:
                buf.append(c)
                if c == '\\' and self.pos + 1 < len(raw):
                    buf.append(raw[self.pos + 1])
                    self.pos += 2
                    continue
                if c == quote:
                    quote = None
                self.pos += 1
                continue

            if c in ('"', "'"):
                quote = c
                buf.append(c)
                self.pos += 1
                continue

            if c == ',' and depth == 0:
                flush()
                self.pos += 1
                return plan, True

            if raw.startswith(':contains(', self.pos):
                flush()
                args = self._read_args(self.pos + len(':contains('))
                plan.steps.append(QueryStep(StepKind.CONTAINS, args[0] if args else ''))
                continue

            mode_token = next((t for t in _MODE_TOKENS if raw.startswith(t[0], self.pos)), None)
            if mode_token:
                plan.mode = mode_token[1]
                self.pos += len(mode_token[0])
                continue

            if raw.startswith('::attr(', self.pos):
                args = self._read_args(self.pos + len('::attr('))
                plan.mode = ExtractionMode.ATTR
                plan.attr = str(args[0]).strip() if args and args[0] is not None else None
                continue

            op_match = _OP_RE.match(raw, self.pos)
            if op_match and op_match.group(1) in POST_OPS:
                name = op_match.group(1)
                args = self._read_args(op_match.end())
                plan.ops.append(PostOp(name, tuple(args)))
                if name == 'json-load':
                    flush()
                    continuation, more = self._parse_plan(allow_namespace=False)
                    if not continuation.is_empty:
                        plan.then = continuation
                    return plan, more
                continue

            if c == '(':
                depth += 1
            elif c == ')' and depth > 0:
                depth -= 1
            buf.append(c)
            self.pos += 1

        flush()
        return plan, False

    def _read_args(self, start: int) -> List[Any]:
        """Read a parenthesized argument list starting after the opening paren."""
        raw = self.raw
        pos = start
        quote: Optional[str] = None
        depth = 0
        tokens: List[str] = []
        current: List[str] = []

        while pos < len(raw):
            c = raw[pos]
            if quote:
                current.append(c)
                if c == '\\' and pos + 1 < len(raw):
                    current.append(raw[pos + 1])
                    pos += 2
                    continue
                if c == quote:
                    quote = None
            elif c in ('"', "'"):
                quote = c
                current.append(c)
            elif c == '(':
                depth += 1
                current.append(c)
            elif c == ')':
                if depth == 0:
                    pos += 1
                    break
                depth -= 1
                current.append(c)
            elif c == ',' and depth == 0:
                tokens.append(''.join(current))
                current = []
            else:
                current.append(c)
            pos += 1

        self.pos = pos
        tokens.append(''.join(current))
        if len(tokens) == 1 and not tokens[0].strip():
            return []
        return [parse_argument(token) for token in tokens]


def parse_argument(token: str) -> Any:
    """Parse one argument token: quoted string literal or JSON scalar."""
    token = token.strip()
    if not token:
        return None
    if len(token) >= 2 and token[0] == "'" and token[-1] == "'":
        inner = token[1:-1].replace("\\'", "'")
        try:
            return json.loads(f'"{inner}"')
        except ValueError:
            return inner
    try:
        return json.loads(token)
    except ValueError:
        return token


def parse_query(raw: Optional[str]) -> List[CompiledQuery]:
    """Compile a query string into its alternatives."""
    if not raw or not raw.strip():
        return []
    return _QueryParser(raw).parse()


@lru_cache(maxsize=1024)
def compile_query(raw: str) -> QueryPlan:
    """Compile and memoize a query string."""
    return QueryPlan(source=raw, alternatives=tuple(parse_query(raw)))


def as_plan(query: QueryLike) -> QueryPlan:
    """Resolve any accepted query shape to a :class:`QueryPlan`."""
    if query is None:
        return QueryPlan(source='')
    if isinstance(query, QueryPlan):
        return query
    if isinstance(query, CompiledQuery):
        return QueryPlan(source='', alternatives=(query,))
    return compile_query(query)
