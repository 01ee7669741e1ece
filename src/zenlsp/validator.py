"""
Schema validation for zen namespaces.

The lint cycle talks to a validator through the small :class:`Validator`
protocol: data is submitted, errors accumulate, the caller reads them and
then clears them for the next run.

:class:`SchemaStore` is the in-process implementation.  A zen namespace is a
map::

    {ns myapp.core
     import #{myapp.common}

     person {:zen/tags #{zen/schema}
             :type zen/map
             :require #{:name}
             :keys {:name {:type zen/string}
                    :age {:type zen/integer :min 0}}}

     alice {:zen/tags #{person}
            :name "Alice"}}

Definitions tagged ``zen/schema`` are checked to be well-formed schemas, and
every definition tagged with a schema symbol is validated against it.  Errors
carry the qualified definition symbol as ``resource`` and a path relative to
that definition.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from pathlib import Path
from typing import Iterable, Protocol, Sequence

from zenlsp.reader import Keyword, ParseError, Symbol, read_string

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationError:
    message: str
    path: tuple = ()
    resource: Symbol | None = None
    row: int | None = None      # optional 1-based position hints
    col: int | None = None
    end_row: int | None = None
    end_col: int | None = None
    severity: str | None = None


class Validator(Protocol):
    def submit(self, data, metadata: dict) -> None: ...

    def read_errors(self) -> Sequence[ValidationError]: ...

    def clear_errors(self) -> None: ...


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

NS = Symbol('ns')
IMPORT = Symbol('import')

ZEN_TAGS = Keyword('zen/tags')
ZEN_SCHEMA = Symbol('zen/schema')
ZEN_TAG = Symbol('zen/tag')

TYPE = Keyword('type')
KEYS = Keyword('keys')
REQUIRE = Keyword('require')
VALUES = Keyword('values')
VALIDATION_TYPE = Keyword('validation-type')
EVERY = Keyword('every')
MIN = Keyword('min')
MAX = Keyword('max')
MIN_LENGTH = Keyword('minLength')
MAX_LENGTH = Keyword('maxLength')
REGEX = Keyword('regex')
MIN_ITEMS = Keyword('minItems')
MAX_ITEMS = Keyword('maxItems')
ENUM = Keyword('enum')

OPEN = Keyword('open')

_NUMBER_TYPES = (int, float, Fraction, Decimal)

# Keys each schema type accepts, on top of :type and the zen/* annotations.
TYPE_KEYS: dict[str, frozenset[Keyword]] = {
    'zen/map': frozenset({KEYS, REQUIRE, VALUES, VALIDATION_TYPE}),
    'zen/vector': frozenset({EVERY, MIN_ITEMS, MAX_ITEMS}),
    'zen/set': frozenset({EVERY}),
    'zen/string': frozenset({MIN_LENGTH, MAX_LENGTH, REGEX}),
    'zen/integer': frozenset({MIN, MAX}),
    'zen/number': frozenset({MIN, MAX}),
    'zen/boolean': frozenset(),
    'zen/keyword': frozenset({ENUM}),
    'zen/symbol': frozenset(),
    'zen/any': frozenset(),
}


def _is_annotation(key) -> bool:
    return isinstance(key, Keyword) and key.namespace == 'zen'


def _type_name(value) -> str:
    if value is None:
        return 'nil'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, int):
        return 'integer'
    if isinstance(value, _NUMBER_TYPES):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, Keyword):
        return 'keyword'
    if isinstance(value, Symbol):
        return 'symbol'
    if isinstance(value, dict):
        return 'map'
    if isinstance(value, (set, frozenset)):
        return 'set'
    if isinstance(value, (list, tuple)):
        return 'vector'
    return type(value).__name__


def _matches_type(type_name: str, value) -> bool:
    if type_name == 'zen/any':
        return True
    if type_name in ('zen/integer', 'zen/number', 'zen/boolean'):
        if isinstance(value, bool):
            return type_name == 'zen/boolean'
        if type_name == 'zen/integer':
            return isinstance(value, int)
        if type_name == 'zen/number':
            return isinstance(value, _NUMBER_TYPES)
        return False
    return _type_name(value) == type_name.split('/', 1)[1]


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SchemaStore:
    """In-memory registry of zen namespaces that accumulates validation errors."""

    def __init__(self, paths: Iterable[str | Path] = ()):
        self.paths: list[Path] = [Path(p) for p in paths]
        self.namespaces: dict[str, dict] = {}
        self.errors: list[ValidationError] = []

    # -- Validator protocol ------------------------------------------------

    def submit(self, data, metadata: dict | None = None) -> None:
        """Load *data* as a namespace, recording any errors it contains."""
        if not isinstance(data, dict):
            self._error(f'Expected namespace to be a map, got {_type_name(data)}')
            return
        ns = data.get(NS)
        if not isinstance(ns, Symbol):
            self._error("Expected symbol for 'ns", path=(NS,))
            return

        self.namespaces[ns.text] = data
        self._load_imports(ns.text, data.get(IMPORT))

        for key, definition in data.items():
            if key in (NS, IMPORT):
                continue
            if not isinstance(key, Symbol):
                self._error(f'Expected symbol as definition name, got {_type_name(key)}', path=(key,))
                continue
            self._check_definition(ns.text, key, definition)

    def read_errors(self) -> list[ValidationError]:
        return list(self.errors)

    def clear_errors(self) -> None:
        self.errors = []

    # -- loading -----------------------------------------------------------

    def load_file(self, path: str | Path) -> None:
        path = Path(path)
        try:
            data = read_string(path.read_text(encoding='utf-8'))
        except (OSError, ParseError) as e:
            logger.warning('load_file: could not read %s: %s', path, e)
            return
        self.submit(data, {'zen/file': str(path)})

    def load_paths(self, paths: Iterable[str | Path]) -> None:
        """Preload every ``*.edn`` file below *paths*; errors are discarded."""
        for root in paths:
            root = Path(root)
            if root not in self.paths:
                self.paths.append(root)
            for edn_file in sorted(root.rglob('*.edn')):
                logger.debug('load_paths: loading %s', edn_file)
                self.load_file(edn_file)
        self.clear_errors()

    def _find_namespace_file(self, ns_name: str) -> Path | None:
        segments = ns_name.split('.')
        if not all(segments) or '/' in ns_name:
            return None
        relative = Path(*segments).with_suffix('.edn')
        for root in self.paths:
            candidate = root / relative
            if candidate.is_file():
                return candidate
        return None

    def _load_imports(self, ns_name: str, imports) -> None:
        if imports is None:
            return
        if not isinstance(imports, (set, frozenset)) or not all(isinstance(i, Symbol) for i in imports):
            self._error('Expected import to be a set of symbols', path=(IMPORT,))
            return
        for imported in sorted(imports, key=lambda s: s.text):
            if imported.text in self.namespaces or imported.text == ns_name:
                continue
            candidate = self._find_namespace_file(imported.text)
            if candidate is not None:
                # Errors inside the imported file belong to that file's own lint run.
                saved, self.errors = self.errors, []
                self.load_file(candidate)
                logger.debug('import %s: %d errors not reported here', imported, len(self.errors))
                self.errors = saved
            if imported.text not in self.namespaces:
                self._error(f"Could not resolve import '{imported}", path=(IMPORT,))

    # -- symbols -----------------------------------------------------------

    def resolve_symbol(self, ns_name: str, sym: Symbol):
        """Return the definition *sym* refers to from namespace *ns_name*."""
        target_ns = sym.namespace or ns_name
        namespace = self.namespaces.get(target_ns)
        if namespace is None:
            return None
        return namespace.get(Symbol(sym.name))

    # -- checks ------------------------------------------------------------

    def _error(self, message: str, path: tuple = (), resource: Symbol | None = None) -> None:
        self.errors.append(ValidationError(message=message, path=tuple(path), resource=resource))

    def _check_definition(self, ns_name: str, name: Symbol, definition) -> None:
        resource = Symbol(f'{ns_name}/{name.text}')
        if not isinstance(definition, dict):
            self._error(f'Expected type of map, got {_type_name(definition)}', resource=resource)
            return

        tags = definition.get(ZEN_TAGS)
        if tags is None:
            return
        if not isinstance(tags, (set, frozenset)) or not all(isinstance(t, Symbol) for t in tags):
            self._error('Expected :zen/tags to be a set of symbols', path=(ZEN_TAGS,), resource=resource)
            return

        for tag in sorted(tags, key=lambda s: s.text):
            if tag in (ZEN_SCHEMA, ZEN_TAG):
                if tag == ZEN_SCHEMA:
                    self._check_schema(definition, (), resource)
                continue
            schema = self.resolve_symbol(ns_name, tag)
            if schema is None:
                self._error(f"Could not resolve symbol '{tag}", path=(ZEN_TAGS,), resource=resource)
                continue
            if not isinstance(schema, dict) or ZEN_SCHEMA not in (schema.get(ZEN_TAGS) or ()):
                # a plain tag (zen/tag) only marks the definition
                continue
            self._validate(schema, definition, (), resource)

    def _check_schema(self, schema, path: tuple, resource: Symbol) -> None:
        """Check that *schema* is itself a well-formed schema."""
        if not isinstance(schema, dict):
            self._error(f'Expected schema to be a map, got {_type_name(schema)}', path, resource)
            return
        type_sym = schema.get(TYPE)
        if type_sym is None:
            self._error(':type is required', path + (TYPE,), resource)
            return
        if not isinstance(type_sym, Symbol) or type_sym.text not in TYPE_KEYS:
            self._error(f"Unknown type '{type_sym}", path + (TYPE,), resource)
            return

        allowed = TYPE_KEYS[type_sym.text]
        for key in schema:
            if key == TYPE or _is_annotation(key):
                continue
            if key not in allowed:
                self._error(f'unknown key {key}', path + (key,), resource)

        keys = schema.get(KEYS)
        if keys is not None:
            if not isinstance(keys, dict):
                self._error('Expected :keys to be a map', path + (KEYS,), resource)
            else:
                for key, sub_schema in keys.items():
                    if not isinstance(key, Keyword):
                        self._error(f'Expected keyword, got {_type_name(key)}', path + (KEYS, key), resource)
                        continue
                    self._check_schema(sub_schema, path + (KEYS, key), resource)

        require = schema.get(REQUIRE)
        if require is not None and not (
            isinstance(require, (set, frozenset)) and all(isinstance(k, Keyword) for k in require)
        ):
            self._error('Expected :require to be a set of keywords', path + (REQUIRE,), resource)

        for nested in (VALUES, EVERY):
            if nested in schema:
                self._check_schema(schema[nested], path + (nested,), resource)

        regex = schema.get(REGEX)
        if isinstance(regex, str):
            try:
                re.compile(regex)
            except re.error as e:
                self._error(f'Invalid regex: {e}', path + (REGEX,), resource)

    def _validate(self, schema: dict, value, path: tuple, resource: Symbol) -> None:
        """Validate *value* against *schema*, recording errors at *path*."""
        type_sym = schema.get(TYPE)
        if not isinstance(type_sym, Symbol) or type_sym.text not in TYPE_KEYS:
            # broken schema, reported where the schema is defined
            return
        type_name = type_sym.text
        if not _matches_type(type_name, value):
            self._error(
                f"Expected type of '{type_name.split('/', 1)[1]}, got '{_type_name(value)}",
                path, resource,
            )
            return

        if type_name == 'zen/map':
            self._validate_map(schema, value, path, resource)
        elif type_name in ('zen/vector', 'zen/set'):
            self._validate_collection(schema, value, path, resource)
        elif type_name == 'zen/string':
            self._validate_string(schema, value, path, resource)
        elif type_name in ('zen/integer', 'zen/number'):
            low, high = schema.get(MIN), schema.get(MAX)
            if isinstance(low, _NUMBER_TYPES) and value < low:
                self._error(f'Expected >= {low}, got {value}', path, resource)
            if isinstance(high, _NUMBER_TYPES) and value > high:
                self._error(f'Expected <= {high}, got {value}', path, resource)
        elif type_name == 'zen/keyword':
            enum = schema.get(ENUM)
            if isinstance(enum, (list, set, frozenset)) and value not in enum:
                self._error(f'Expected one of {sorted(str(e) for e in enum)}, got {value}', path, resource)

    def _validate_map(self, schema: dict, value: dict, path: tuple, resource: Symbol) -> None:
        keys = schema.get(KEYS) if isinstance(schema.get(KEYS), dict) else {}
        values_schema = schema.get(VALUES)
        closed = schema.get(VALIDATION_TYPE) != OPEN and values_schema is None

        required_keys = schema.get(REQUIRE)
        if not isinstance(required_keys, (set, frozenset)):
            required_keys = ()
        for required in sorted(required_keys, key=str):
            if required not in value:
                self._error(f'{required} is required', path, resource)

        for key, item in value.items():
            if key in keys and isinstance(keys[key], dict):
                self._validate(keys[key], item, path + (key,), resource)
            elif isinstance(values_schema, dict):
                self._validate(values_schema, item, path + (key,), resource)
            elif closed and key not in keys and not _is_annotation(key):
                self._error(f'unknown key {key}', path + (key,), resource)

    def _validate_collection(self, schema: dict, value, path: tuple, resource: Symbol) -> None:
        low, high = schema.get(MIN_ITEMS), schema.get(MAX_ITEMS)
        if isinstance(low, int) and len(value) < low:
            self._error(f'Expected at least {low} items, got {len(value)}', path, resource)
        if isinstance(high, int) and len(value) > high:
            self._error(f'Expected at most {high} items, got {len(value)}', path, resource)
        every = schema.get(EVERY)
        if not isinstance(every, dict):
            return
        if isinstance(value, list):
            for index, item in enumerate(value):
                self._validate(every, item, path + (index,), resource)
        else:
            for item in value:
                self._validate(every, item, path, resource)

    def _validate_string(self, schema: dict, value: str, path: tuple, resource: Symbol) -> None:
        low, high = schema.get(MIN_LENGTH), schema.get(MAX_LENGTH)
        if isinstance(low, int) and len(value) < low:
            self._error(f'Expected length >= {low}, got {len(value)}', path, resource)
        if isinstance(high, int) and len(value) > high:
            self._error(f'Expected length <= {high}, got {len(value)}', path, resource)
        regex = schema.get(REGEX)
        if isinstance(regex, str):
            try:
                if re.search(regex, value) is None:
                    self._error(f'Expected to match {regex!r}', path, resource)
            except re.error:
                pass  # reported on the schema itself
