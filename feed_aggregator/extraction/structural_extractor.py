"""Execution of compiled selector queries against a parsed document tree."""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from bs4.element import Comment, Declaration, Doctype, NavigableString, ProcessingInstruction
from soupsieve import SelectorSyntaxError

from .query_parser import (
    CompiledQuery, ExtractionMode, PostOp, QueryLike, StepKind, as_plan,
)

logger = logging.getLogger(__name__)

Value = Union[str, List[str], Tag]
Fallback = Tuple[ExtractionMode, Optional[str]]

# Attributes whose values are URLs and get resolved to absolute form on read
URL_ATTRIBUTES = frozenset({
    'href', 'src', 'action', 'formaction', 'poster', 'cite', 'data',
    'background', 'longdesc', 'usemap', 'codebase', 'manifest', 'icon',
})

_REGEX_ARG = re.compile(r'^/(.*)/([imsx]*)$', re.DOTALL)
_TAG_NAME = re.compile(r'^[A-Za-z][A-Za-z0-9_-]*$')
_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)

TEXT_FALLBACK: Sequence[Fallback] = ((ExtractionMode.TEXT, None),)
TEXT_OR_HTML_FALLBACK: Sequence[Fallback] = ((ExtractionMode.TEXT, None), (ExtractionMode.INNER_HTML, None))
HTML_OR_TEXT_FALLBACK: Sequence[Fallback] = ((ExtractionMode.INNER_HTML, None), (ExtractionMode.TEXT, None))
HREF_FALLBACK: Sequence[Fallback] = ((ExtractionMode.ATTR, 'href'),)
SRC_FALLBACK: Sequence[Fallback] = ((ExtractionMode.ATTR, 'src'),)


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list):
        return len(value) == 0
    return False


def text_with_breaks(element: Tag) -> str:
    """Text content of ``element`` with ``<br>`` rendered as newlines."""
    parts = []
    for node in element.descendants:
        if isinstance(node, Tag):
            if node.name == 'br':
                parts.append('\n')
        elif isinstance(node, NavigableString) and not isinstance(node, _SKIPPED_STRINGS):
            parts.append(str(node))
    return ''.join(parts)


def text_matches(text: str, arg: Any) -> bool:
    """Substring search, or regex search when ``arg`` is written ``/pattern/flags``."""
    if arg is None:
        return True
    needle = str(arg) if not isinstance(arg, bool) else str(arg).lower()
    match = _REGEX_ARG.match(needle)
    if match and match.group(1):
        flags = 0
        for flag in match.group(2):
            flags |= {'i': re.IGNORECASE, 'm': re.MULTILINE, 's': re.DOTALL, 'x': re.VERBOSE}[flag]
        try:
            return re.search(match.group(1), text, flags) is not None
        except re.error:
            pass
    return needle in text


def json_to_markup(data: Any) -> Tag:
    """Render a parsed JSON value as a detached element tree.

    Objects become ``<object>`` elements whose members are child elements
    named after their keys (``<member>`` when a key is not a valid tag name),
    arrays become ``<array>`` with ``<item>`` children, scalars become text.
    Every member carries its original key in ``data-key`` and its JSON type
    in ``data-type``.
    """
    soup = BeautifulSoup('', 'html.parser')
    if isinstance(data, dict):
        root_name = 'object'
    elif isinstance(data, list):
        root_name = 'array'
    else:
        root_name = 'value'
    root = _build_json_node(soup, data, root_name)
    soup.append(root)
    return root


def _json_type(value: Any) -> str:
    if isinstance(value, dict):
        return 'object'
    if isinstance(value, list):
        return 'array'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if value is None:
        return 'null'
    return 'string'


def _build_json_node(soup: BeautifulSoup, value: Any, name: str, key: Optional[str] = None) -> Tag:
    tag = soup.new_tag(name)
    if key is not None:
        tag['data-key'] = key
    tag['data-type'] = _json_type(value)

    if isinstance(value, dict):
        for member_key, member_value in value.items():
            member_key = str(member_key)
            member_name = member_key.lower() if _TAG_NAME.match(member_key) else 'member'
            tag.append(_build_json_node(soup, member_value, member_name, member_key))
    elif isinstance(value, list):
        for item in value:
            tag.append(_build_json_node(soup, item, 'item'))
    elif isinstance(value, bool):
        tag.string = 'true' if value else 'false'
    elif value is not None:
        tag.string = str(value)
    return tag


class StructuralExtractor:
    """Evaluates compiled queries against a document tree.

    ``base_url`` is used to resolve URL attributes read with ``::attr``;
    ``namespaces`` maps the names used by ``@name`` queries to elements.
    """

    def __init__(self, base_url: Optional[str] = None, namespaces: Optional[Dict[str, Tag]] = None):
        self.base_url = base_url
        self.namespaces: Dict[str, Tag] = dict(namespaces or {})

    def register_namespace(self, name: str, node: Optional[Tag]):
        if node is None:
            self.namespaces.pop(name, None)
        else:
            self.namespaces[name] = node

    # Public operations

    def extract_all(self, query: QueryLike, context: Tag) -> List[Tag]:
        """Multi-match mode: elements matched by the first successful alternative."""
        for plan in as_plan(query):
            elements = self._match(plan, context)
            if elements:
                return elements
        return []

    def extract(self, query: QueryLike, context: Tag,
                fallbacks: Optional[Iterable[Fallback]] = None) -> Optional[Union[str, List[str]]]:
        """Extract a scalar or list value; ``None`` when nothing non-empty is found."""
        fallbacks = tuple(fallbacks or ())
        for plan in as_plan(query):
            elements = self._match(plan, context)
            if not elements:
                continue
            value = self._evaluate(plan, elements[0], fallbacks, want_node=False)
            if isinstance(value, Tag):
                value = str(value)
            if not is_empty_value(value):
                return value
        return None

    def extract_text(self, query: QueryLike, context: Tag,
                     fallbacks: Optional[Iterable[Fallback]] = None) -> Optional[str]:
        """Like :meth:`extract` but always returns a string."""
        value = self.extract(query, context, fallbacks)
        if isinstance(value, list):
            value = ' '.join(str(item) for item in value)
        return value

    def extract_node(self, query: QueryLike, context: Tag) -> Optional[Tag]:
        """First matched element, or the synthetic node built by a trailing ``json-load``."""
        for plan in as_plan(query):
            elements = self._match(plan, context)
            if not elements:
                continue
            if plan.mode is None and not plan.ops:
                return elements[0]
            value = self._evaluate(plan, elements[0], (), want_node=True)
            if isinstance(value, Tag):
                return value
        return None

    # Evaluation

    def _match(self, plan: CompiledQuery, context: Tag) -> List[Tag]:
        node = context
        if plan.namespace:
            node = self.namespaces.get(plan.namespace)
            if node is None:
                logger.debug("Unknown query namespace '%s'", plan.namespace)
                return []

        results: List[Tag] = [node]
        for step in plan.steps:
            if not results:
                break
            if step.kind == StepKind.SELECT:
                results = self._select(results[0], step.value)
            elif step.kind == StepKind.CONTAINS:
                results = [el for el in results if text_matches(el.get_text(), step.value)]
        return results

    @staticmethod
    def _select(node: Tag, selector: str) -> List[Tag]:
        try:
            return node.select(selector)
        except (SelectorSyntaxError, ValueError, NotImplementedError) as e:
            logger.debug("Selector '%s' not usable: %s", selector, e)
            return []

    def _evaluate(self, plan: CompiledQuery, element: Tag,
                  fallbacks: Sequence[Fallback], want_node: bool) -> Optional[Value]:
        if plan.mode is not None:
            value = self._apply_mode(element, plan.mode, plan.attr)
        else:
            value = None
            for mode, attr in fallbacks:
                value = self._apply_mode(element, mode, attr)
                if not is_empty_value(value):
                    break

        if is_empty_value(value):
            return None

        for op in plan.ops:
            if op.name == 'json-load':
                node = self._json_load(value)
                if node is None or plan.then is None:
                    return node
                if want_node:
                    return self.extract_node(plan.then, node)
                return self.extract(plan.then, node, fallbacks)
            value = self._apply_op(op, value)
            if is_empty_value(value):
                return None
        return value

    def _apply_mode(self, element: Tag, mode: ExtractionMode, attr: Optional[str]) -> Optional[str]:
        if mode == ExtractionMode.TEXT:
            return text_with_breaks(element).strip()
        if mode == ExtractionMode.INNER_HTML:
            return element.decode_contents()
        if mode == ExtractionMode.OUTER_HTML:
            return str(element)
        if mode == ExtractionMode.ATTR:
            return self._read_attr(element, attr)
        return None

    def _read_attr(self, element: Tag, name: Optional[str]) -> Optional[str]:
        if not name or not hasattr(element, 'get'):
            return None
        value = element.get(name)
        if isinstance(value, list):
            value = ' '.join(value)
        if value is None or name.lower() == 'style':
            return value

        if name.lower() in URL_ATTRIBUTES and self.base_url:
            # canonical absolute form is written back to the document
            resolved = urljoin(self.base_url, value.strip())
            element[name] = resolved
            value = resolved
        return value

    # Post-processing operations

    def _apply_op(self, op: PostOp, value: Value) -> Optional[Value]:
        handler = getattr(self, '_op_' + op.name.replace('-', '_'), None)
        if handler is None:
            return value
        return handler(op, value)

    @staticmethod
    def _op_append(op: PostOp, value):
        suffix = '' if op.arg(0) is None else str(op.arg(0))
        if isinstance(value, list):
            return [str(item) + suffix for item in value]
        return value + suffix

    @staticmethod
    def _op_prepend(op: PostOp, value):
        prefix = '' if op.arg(0) is None else str(op.arg(0))
        if isinstance(value, list):
            return [prefix + str(item) for item in value]
        return prefix + value

    @staticmethod
    def _op_split(op: PostOp, value):
        sep = op.arg(0)
        sep = None if sep is None else str(sep)

        def split(text: str) -> List[str]:
            if sep == '':
                return list(text)
            return text.split(sep)

        if isinstance(value, list):
            return [part for item in value for part in split(str(item))]
        return split(value)

    @staticmethod
    def _op_join(op: PostOp, value):
        if not isinstance(value, list):
            return value
        sep = '' if op.arg(0) is None else str(op.arg(0))
        return sep.join(str(item) for item in value)

    @staticmethod
    def _op_slice(op: PostOp, value):
        start, end = _as_index(op.arg(0)), _as_index(op.arg(1))
        return value[start:end]

    @staticmethod
    def _op_get(op: PostOp, value):
        index = _as_index(op.arg(0)) or 0
        items = value if isinstance(value, list) else [value]
        try:
            return items[index]
        except IndexError:
            return None

    @staticmethod
    def _op_filter(op: PostOp, value):
        mode = str(op.arg(0, 'nonempty')).lower()
        arg = op.arg(1)
        items = value if isinstance(value, list) else [value]
        kept = [item for item in items if _filter_keeps(mode, arg, str(item))]
        if isinstance(value, list):
            return kept
        return kept[0] if kept else None

    @staticmethod
    def _json_load(value: Value) -> Optional[Tag]:
        if isinstance(value, Tag):
            return value
        if isinstance(value, list):
            value = ''.join(value)
        try:
            data = json.loads(value)
        except ValueError as e:
            logger.debug("json-load on non-JSON value: %s", e)
            return None
        return json_to_markup(data)


def _as_index(arg: Any) -> Optional[int]:
    if arg is None or isinstance(arg, bool):
        return None
    try:
        return int(arg)
    except (TypeError, ValueError):
        return None


def _filter_keeps(mode: str, arg: Any, item: str) -> bool:
    needle = '' if arg is None else str(arg)
    if mode == 'contains':
        return needle in item
    if mode in ('not-contains', 'exclude'):
        return needle not in item
    if mode in ('match', 'not-match'):
        try:
            found = re.search(needle, item) is not None
        except re.error:
            found = needle in item
        return found if mode == 'match' else not found
    if mode == 'equals':
        return item == needle
    if mode == 'nonempty':
        return bool(item.strip())
    return True
