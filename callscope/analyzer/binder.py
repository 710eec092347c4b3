"""Static binder for annotated Python modules.

Produces, per file, the two tables the call-graph engine consumes:

- ``uses``: identifier start byte -> the Symbol it refers to
- ``selections``: attribute-name start byte -> Selection, for ``x.attr``
  where the class of ``x`` is statically known

Name resolution follows Python's LEGB rules (class bodies are not visible
from nested functions). Value types come only from evidence in the source:
``self``/``cls``, parameter and variable annotations, constructor calls,
return annotations and ``super()``. When the evidence disagrees or is
missing the type is unknown and nothing is bound, so an unbound attribute
is reported downstream as dynamic rather than guessed.
"""
import builtins
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from tree_sitter import Node, Tree

from callscope.analyzer.extractor import Entity, Import, parse_import
from callscope.analyzer.program import NodeKey, Selection, node_key, node_text
from callscope.analyzer.resolver import ModuleResolver
from callscope.callgraph.symbols import CLASS_KINDS, Position, Symbol, SymbolKind, symbol_key

logger = logging.getLogger(__name__)

BUILTIN_NAMES = frozenset(dir(builtins))
BUILTIN_TYPES = frozenset(n for n in BUILTIN_NAMES if isinstance(getattr(builtins, n), type))

COMPREHENSIONS = ('list_comprehension', 'set_comprehension', 'dictionary_comprehension', 'generator_expression')
PATTERN_CONTAINERS = ('pattern_list', 'tuple_pattern', 'list_pattern', 'list_splat_pattern',
                      'tuple', 'list', 'parenthesized_expression', 'expression_list')
TARGET_OWNERS = ('assignment', 'for_statement', 'for_in_clause')
SKIPPED_STATEMENTS = ('import_statement', 'import_from_statement', 'future_import_statement',
                      'global_statement', 'nonlocal_statement')

LITERAL_TYPES = {
    'string': 'str', 'concatenated_string': 'str', 'integer': 'int', 'float': 'float',
    'true': 'bool', 'false': 'bool', 'list': 'list', 'list_comprehension': 'list',
    'dictionary': 'dict', 'dictionary_comprehension': 'dict', 'set': 'set',
    'set_comprehension': 'set', 'tuple': 'tuple',
}
WRAPPER_TYPES = {'Optional', 'Annotated', 'Final', 'ClassVar', 'Required', 'NotRequired', 'ReadOnly'}
IGNORED_BASES = {'Protocol', 'Generic', 'ABC', 'object'}
PROPERTY_DECORATORS = {'property', 'cached_property'}

_STRING_LITERAL = re.compile(r'^[rbuRBU]*("""|\'\'\'|"|\')(.*)\1$', re.DOTALL)
_STRING_ANNOTATION = re.compile(r'^\s*(?:Optional\[\s*)?([A-Za-z_][\w.]*)\s*\]?\s*(?:\|\s*None)?\s*$')


@dataclass
class ModuleUnit:
    """One parsed module handed to the binder."""
    package: str
    is_init: bool
    path: str
    source: bytes
    tree: Tree
    entities: List[Entity]


@dataclass(frozen=True)
class Value:
    """Statically known value of an expression.

    kind is one of: module, class, instance, super, func, coroutine,
    external, external_instance, builtin, builtin_instance.
    """
    kind: str
    cls: Optional['ClassInfo'] = None
    symbol: Optional[Symbol] = None
    path: Optional[str] = None
    name: Optional[str] = None
    loaded: bool = False
    inner: Optional['Value'] = None


@dataclass(eq=False)
class ImportBinding:
    imp: Import
    unit: ModuleUnit


@dataclass(eq=False)
class Scope:
    kind: str  # module, class, function, comprehension
    unit: ModuleUnit
    parent: Optional['Scope'] = None
    owner: Optional[Entity] = None
    names: Dict[str, object] = field(default_factory=dict)
    sources: Dict[str, List[tuple]] = field(default_factory=dict)
    globals: Set[str] = field(default_factory=set)
    nonlocals: Set[str] = field(default_factory=set)
    wildcards: List[Import] = field(default_factory=list)


@dataclass(eq=False)
class ClassInfo:
    entity: Entity
    unit: ModuleUnit
    members: Dict[str, Symbol] = field(default_factory=dict)
    field_sources: Dict[str, List[tuple]] = field(default_factory=dict)
    imports: Dict[str, ImportBinding] = field(default_factory=dict)
    mro: Optional[list] = None

    @property
    def symbol(self) -> Symbol:
        return self.entity.symbol


def same_node(a: Optional[Node], b: Optional[Node]) -> bool:
    return a is not None and b is not None and node_key(a) == node_key(b)


def target_identifiers(node: Optional[Node]) -> List[Node]:
    """Identifiers bound by an assignment/for target (attributes and subscripts bind nothing)."""
    if node is None:
        return []
    if node.type == 'identifier':
        return [node]
    if node.type in PATTERN_CONTAINERS:
        found = []
        for child in node.named_children:
            found.extend(target_identifiers(child))
        return found
    return []


def parameter_names(params: Optional[Node]) -> Iterator[Tuple[Node, Optional[Node]]]:
    """Yield (identifier, annotation) for each named parameter."""
    if params is None:
        return
    for p in params.named_children:
        if p.type == 'identifier':
            yield p, None
        elif p.type == 'typed_parameter':
            first = p.named_children[0] if p.named_children else None
            if first is None:
                continue
            if first.type == 'identifier':
                yield first, p.child_by_field_name('type')
            else:
                for ident in first.named_children:
                    if ident.type == 'identifier':
                        yield ident, None
        elif p.type in ('default_parameter', 'typed_default_parameter'):
            name = p.child_by_field_name('name')
            if name is not None and name.type == 'identifier':
                yield name, p.child_by_field_name('type')
        elif p.type in ('list_splat_pattern', 'dictionary_splat_pattern'):
            for ident in p.named_children:
                if ident.type == 'identifier':
                    yield ident, None


def is_async(definition: Optional[Node]) -> bool:
    return definition is not None and any(c.type == 'async' for c in definition.children)


class Binder:
    """Binds identifiers across all modules of a program."""

    def __init__(self, units: List[ModuleUnit], resolver: ModuleResolver):
        self.units: Dict[str, ModuleUnit] = {u.package: u for u in units}
        self.modules = frozenset(self.units)
        self.resolver = resolver

        self._unit_of: Dict[int, ModuleUnit] = {}
        self._entity_of: Dict[int, Entity] = {}
        self._by_definition: Dict[Tuple[str, NodeKey], Entity] = {}
        for unit in units:
            for entity in unit.entities:
                self._unit_of[id(entity)] = unit
                self._entity_of[id(entity.symbol)] = entity
                if entity.definition is not None:
                    self._by_definition[(unit.package, node_key(entity.definition))] = entity

        self._module_scopes: Dict[str, Scope] = {}
        self._scopes: Dict[int, Scope] = {}
        self._classes: Dict[int, ClassInfo] = {}
        self._externals: Dict[Tuple[str, str], Symbol] = {}
        self._builtins: Dict[str, Symbol] = {}
        self._live_scopes: List[Scope] = []
        self._type_memo: Dict[tuple, Optional[Value]] = {}
        self._name_memo: Dict[tuple, Optional[Value]] = {}
        self._return_memo: Dict[int, Optional[Value]] = {}
        self._in_progress: Set[tuple] = set()

        self._uses: Dict[int, Symbol] = {}
        self._selections: Dict[int, Selection] = {}

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def bind_all(self) -> Dict[str, Tuple[Dict[int, Symbol], Dict[int, Selection]]]:
        """Bind every module; returns package -> (uses, selections)."""
        results = {}
        for package, unit in self.units.items():
            results[package] = self.bind_module(unit)
            logger.debug("Bound %s: %d uses, %d selections",
                         package, len(results[package][0]), len(results[package][1]))
        return results

    def initializers(self) -> Dict[tuple, Symbol]:
        """Class symbol key -> the ``__init__`` instantiation runs, for every class.

        Classes whose initializer comes from ``object`` or a builtin base are
        left out.
        """
        found = {}
        for unit in self.units.values():
            for entity in unit.entities:
                if entity.kind not in CLASS_KINDS:
                    continue
                member = self._lookup_member(self._class_info(entity), '__init__')
                if member is None:
                    continue
                sym = member[1]
                if sym.kind in (SymbolKind.METHOD, SymbolKind.EXTERNAL):
                    found[symbol_key(entity.symbol)] = sym
        return found

    def bind_module(self, unit: ModuleUnit) -> Tuple[Dict[int, Symbol], Dict[int, Selection]]:
        self._uses = {}
        self._selections = {}
        scope = self._module_scope(unit)
        for child in unit.tree.root_node.named_children:
            self._bind(child, scope)
        return self._uses, self._selections

    # ------------------------------------------------------------------
    # Symbols
    # ------------------------------------------------------------------

    def _builtin(self, name: str) -> Symbol:
        sym = self._builtins.get(name)
        if sym is None:
            sym = Symbol(kind=SymbolKind.BUILTIN, name=name, package=None, position=None, qualified_name=name)
            self._builtins[name] = sym
        return sym

    def _external(self, package: str, name: str) -> Symbol:
        key = (package, name)
        sym = self._externals.get(key)
        if sym is None:
            sym = Symbol(kind=SymbolKind.EXTERNAL, name=name, package=package, position=None, qualified_name=name)
            self._externals[key] = sym
        return sym

    def _local_symbol(self, scope: Scope, name: str, ident: Node, kind: SymbolKind = SymbolKind.VAR) -> Symbol:
        owner = scope.owner
        qualified = f"{owner.qualified_name}.{name}" if owner is not None else name
        return Symbol(
            kind=kind,
            name=name,
            package=scope.unit.package,
            position=Position(scope.unit.path, ident.start_point[0] + 1, ident.start_point[1]),
            qualified_name=qualified,
        )

    def _entity_for_definition(self, unit: ModuleUnit, definition: Node) -> Optional[Entity]:
        return self._by_definition.get((unit.package, node_key(definition)))

    # ------------------------------------------------------------------
    # Scope construction
    # ------------------------------------------------------------------

    def _collect_bindings(self, root: Node, unit: ModuleUnit) -> Iterator[Tuple[str, Node, tuple]]:
        """Yield (name, node, source) for every name bound directly in a scope region.

        Does not descend into nested functions, classes, lambdas or
        comprehensions; nested definitions are reported by name.
        """
        stack = list(reversed(root.named_children))
        while stack:
            node = stack.pop()
            t = node.type

            if t == 'decorated_definition':
                definition = node.child_by_field_name('definition')
                if definition is not None:
                    stack.append(definition)
                continue
            if t in ('function_definition', 'class_definition'):
                name_node = node.child_by_field_name('name')
                entity = self._entity_for_definition(unit, node)
                if name_node is not None and entity is not None:
                    yield node_text(name_node), name_node, ('entity', entity, None)
                continue
            if t == 'lambda' or t in COMPREHENSIONS:
                continue
            if t in ('import_statement', 'import_from_statement'):
                for imp in parse_import(node, unit.path):
                    if imp.wildcard:
                        yield '*', node, ('wildcard', imp, None)
                    elif imp.bound_name:
                        yield imp.bound_name, node, ('import', imp, None)
                continue
            if t in ('global_statement', 'nonlocal_statement'):
                kind = 'global' if t == 'global_statement' else 'nonlocal'
                for ident in node.named_children:
                    if ident.type == 'identifier':
                        yield node_text(ident), ident, (kind, None, None)
                continue

            if t == 'assignment':
                yield from self._assignment_bindings(node)
            elif t == 'augmented_assignment':
                left = node.child_by_field_name('left')
                if left is not None and left.type == 'identifier':
                    yield node_text(left), left, ('unknown', None, None)
            elif t == 'for_statement':
                for ident in target_identifiers(node.child_by_field_name('left')):
                    yield node_text(ident), ident, ('unknown', None, None)
            elif t == 'as_pattern':
                for ident in self._as_pattern_targets(node):
                    yield node_text(ident), ident, ('unknown', None, None)
            elif t == 'named_expression':
                name = node.child_by_field_name('name')
                if name is not None and name.type == 'identifier':
                    yield node_text(name), name, ('expr', node.child_by_field_name('value'), None)
            elif t == 'except_clause':
                alias = self._except_alias(node)
                if alias is not None:
                    yield node_text(alias), alias, ('unknown', None, None)

            stack.extend(reversed(node.named_children))

    @staticmethod
    def _assignment_bindings(node: Node) -> Iterator[Tuple[str, Node, tuple]]:
        left = node.child_by_field_name('left')
        annotation = node.child_by_field_name('type')
        right = node.child_by_field_name('right')
        while right is not None and right.type == 'assignment':
            right = right.child_by_field_name('right')

        if left is not None and left.type == 'identifier':
            if annotation is not None:
                yield node_text(left), left, ('annotation', annotation, None)
            else:
                yield node_text(left), left, ('expr', right, None)
            return
        for ident in target_identifiers(left):
            yield node_text(ident), ident, ('unknown', None, None)

    @staticmethod
    def _as_pattern_targets(node: Node) -> List[Node]:
        alias = node.child_by_field_name('alias')
        if alias is None:
            return []
        if alias.type == 'identifier':
            return [alias]
        found = []
        for child in alias.named_children:
            found.extend(target_identifiers(child))
        return found

    @staticmethod
    def _except_alias(node: Node) -> Optional[Node]:
        seen_as = False
        for child in node.children:
            if child.type == 'as':
                seen_as = True
            elif seen_as and child.is_named:
                return child if child.type == 'identifier' else None
        return None

    def _module_scope(self, unit: ModuleUnit) -> Scope:
        scope = self._module_scopes.get(unit.package)
        if scope is not None:
            return scope
        scope = Scope('module', unit)
        self._module_scopes[unit.package] = scope

        top_level = {e.name: e for e in unit.entities
                     if e.parent is None and e.kind != SymbolKind.MODULE}
        for name, node, source in self._collect_bindings(unit.tree.root_node, unit):
            kind = source[0]
            if kind in ('global', 'nonlocal'):
                continue
            if kind == 'wildcard':
                scope.wildcards.append(source[1])
            elif kind == 'import':
                if name not in scope.names:
                    scope.names[name] = ImportBinding(source[1], unit)
            elif kind == 'entity':
                scope.names[name] = source[1].symbol
            else:
                current = scope.names.get(name)
                if current is None or isinstance(current, ImportBinding):
                    entity = top_level.get(name)
                    if entity is not None and entity.kind in (SymbolKind.VAR, SymbolKind.CONST):
                        scope.names[name] = entity.symbol
                    elif current is None:
                        scope.names[name] = self._local_symbol(scope, name, node)
                scope.sources.setdefault(name, []).append(source)
        return scope

    def _scope_for(self, entity: Optional[Entity], unit: Optional[ModuleUnit] = None) -> Scope:
        """Scope whose region is the body of ``entity`` (module scope for None)."""
        if entity is None:
            return self._module_scope(unit)
        cached = self._scopes.get(id(entity))
        if cached is not None:
            return cached

        unit = self._unit_of[id(entity)]
        if entity.kind == SymbolKind.MODULE:
            return self._module_scope(unit)
        parent = self._scope_for(entity.parent, unit)

        if entity.kind in CLASS_KINDS:
            info = self._class_info(entity)
            scope = Scope('class', unit, parent, entity)
            scope.names.update(info.members)
            scope.names.update({k: v for k, v in info.imports.items() if k not in scope.names})
            self._scopes[id(entity)] = scope
            return scope

        scope = Scope('function', unit, parent, entity)
        self._scopes[id(entity)] = scope
        definition = entity.definition
        params = definition.child_by_field_name('parameters') if definition is not None else None
        first_kind = self._first_parameter_kind(entity)
        for index, (ident, annotation) in enumerate(parameter_names(params)):
            name = node_text(ident)
            scope.names[name] = self._local_symbol(scope, name, ident)
            if index == 0 and first_kind is not None:
                scope.sources[name] = [(first_kind, self._class_info(entity.parent), None)]
            elif annotation is not None:
                scope.sources[name] = [('annotation', annotation, None)]
            else:
                scope.sources[name] = [('unknown', None, None)]

        body = definition.child_by_field_name('body') if definition is not None else None
        if body is not None:
            self._populate_function_scope(scope, body, unit)
        return scope

    def _populate_function_scope(self, scope: Scope, body: Node, unit: ModuleUnit):
        bindings = list(self._collect_bindings(body, unit))
        for name, _, source in bindings:
            if source[0] == 'global':
                scope.globals.add(name)
            elif source[0] == 'nonlocal':
                scope.nonlocals.add(name)

        for name, node, source in bindings:
            kind = source[0]
            if kind in ('global', 'nonlocal', 'wildcard') or name in scope.globals or name in scope.nonlocals:
                continue
            if kind == 'entity':
                scope.names[name] = source[1].symbol
            elif kind == 'import':
                scope.names.setdefault(name, ImportBinding(source[1], unit))
            else:
                if name not in scope.names:
                    scope.names[name] = self._local_symbol(scope, name, node)
                scope.sources.setdefault(name, []).append(source)

    @staticmethod
    def _first_parameter_kind(entity: Entity) -> Optional[str]:
        if entity.kind != SymbolKind.METHOD or entity.parent is None:
            return None
        decorators = {d.rsplit('.', 1)[-1] for d in entity.decorators}
        if 'staticmethod' in decorators:
            return None
        if 'classmethod' in decorators or entity.name in ('__new__', '__init_subclass__', '__class_getitem__'):
            return 'cls'
        return 'self'

    def _class_info(self, entity: Entity) -> ClassInfo:
        info = self._classes.get(id(entity))
        if info is not None:
            return info
        unit = self._unit_of[id(entity)]
        info = ClassInfo(entity, unit)
        self._classes[id(entity)] = info

        body = entity.definition.child_by_field_name('body') if entity.definition is not None else None
        if body is None:
            return info

        for name, node, source in self._collect_bindings(body, unit):
            kind = source[0]
            if kind == 'entity':
                info.members[name] = source[1].symbol
            elif kind == 'import':
                info.imports.setdefault(name, ImportBinding(source[1], unit))
            elif kind in ('global', 'nonlocal', 'wildcard'):
                continue
            else:
                if name not in info.members:
                    info.members[name] = self._field_symbol(info, name, node)
                info.field_sources.setdefault(name, []).append(source)

        for method in unit.entities:
            if method.parent is entity and method.kind == SymbolKind.METHOD:
                self._collect_instance_fields(info, method)
        return info

    def _field_symbol(self, info: ClassInfo, name: str, ident: Node) -> Symbol:
        return Symbol(
            kind=SymbolKind.FIELD,
            name=name,
            package=info.unit.package,
            position=Position(info.unit.path, ident.start_point[0] + 1, ident.start_point[1]),
            qualified_name=f"{info.entity.qualified_name}.{name}",
            receiver=info.entity.name,
        )

    def _collect_instance_fields(self, info: ClassInfo, method: Entity):
        """Record ``self.x = ...`` assignments as instance fields of the class."""
        if self._first_parameter_kind(method) != 'self':
            return
        params = list(parameter_names(method.definition.child_by_field_name('parameters')))
        if not params:
            return
        self_name = node_text(params[0][0])
        body = method.definition.child_by_field_name('body')
        if body is None:
            return

        stack = [body]
        while stack:
            node = stack.pop()
            if node.type in ('class_definition',):
                continue
            if node.type in ('assignment', 'augmented_assignment'):
                left = node.child_by_field_name('left')
                targets = [left] if left is not None and left.type == 'attribute' else []
                if left is not None and left.type in PATTERN_CONTAINERS:
                    targets = [c for c in left.named_children if c.type == 'attribute']
                for target in targets:
                    obj = target.child_by_field_name('object')
                    attr = target.child_by_field_name('attribute')
                    if obj is None or attr is None or obj.type != 'identifier' or node_text(obj) != self_name:
                        continue
                    name = node_text(attr)
                    if name not in info.members:
                        info.members[name] = self._field_symbol(info, name, attr)
                    if info.members[name].kind != SymbolKind.FIELD:
                        continue
                    annotation = node.child_by_field_name('type')
                    if annotation is not None:
                        source = ('annotation', annotation, method)
                    elif node.type == 'assignment' and target is left:
                        source = ('expr', node.child_by_field_name('right'), method)
                    else:
                        source = ('unknown', None, method)
                    info.field_sources.setdefault(name, []).append(source)
            stack.extend(node.named_children)

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------

    def _resolve_name(self, name: str, scope: Scope) -> Tuple[Optional[Symbol], Optional[Value]]:
        current = scope
        innermost = True
        while current is not None:
            if current.kind == 'class' and not innermost:
                current = current.parent
                continue
            innermost = False
            if name in current.globals:
                module_scope = self._module_scope(current.unit)
                return self._resolve_in(module_scope, name, module_scope.names.get(name))
            if name in current.nonlocals:
                current = current.parent
                continue
            if name in current.names:
                return self._resolve_in(current, name, current.names[name])
            if current.kind == 'module':
                found = self._wildcard_lookup(current, name, frozenset())
                if found is not None:
                    return found
            current = current.parent

        if name in BUILTIN_NAMES:
            return self._builtin(name), Value('builtin', name=name)
        return None, None

    def _resolve_in(self, scope: Scope, name: str, binding, guard=frozenset()) -> Tuple[Optional[Symbol], Optional[Value]]:
        if binding is None:
            return None, None
        if isinstance(binding, ImportBinding):
            return self._resolve_import(binding, guard)
        return binding, self._symbol_value(scope, name, binding)

    def _symbol_value(self, scope: Scope, name: str, sym: Symbol) -> Optional[Value]:
        if sym.kind in (SymbolKind.FUNC, SymbolKind.METHOD):
            return Value('func', symbol=sym)
        if sym.kind in CLASS_KINDS:
            entity = self._entity_of.get(id(sym))
            return Value('class', cls=self._class_info(entity)) if entity is not None else None
        if sym.kind == SymbolKind.BUILTIN:
            return Value('builtin', name=sym.name)
        if sym.kind == SymbolKind.EXTERNAL:
            return Value('external', path=sym.package, name=sym.name)
        if scope.kind == 'class' and scope.owner is not None:
            return self._field_type(self._class_info(scope.owner), name)
        return self._name_type(scope, name)

    def _resolve_import(self, binding: ImportBinding, guard=frozenset()) -> Tuple[Optional[Symbol], Optional[Value]]:
        imp, unit = binding.imp, binding.unit
        if imp.name is None:
            path = imp.module if imp.alias else imp.module.split('.')[0]
            return None, self._module_value(path)

        base = self.resolver.absolute_name(unit.package, unit.is_init, imp.module)
        if base is None:
            return None, None
        submodule = f"{base}.{imp.name}"
        if submodule in self.modules:
            return None, Value('module', path=submodule, loaded=True)
        if base in self.modules:
            return self._export(base, imp.name, guard)
        if self._is_namespace(base):
            return None, None
        return self._external(base, imp.name), Value('external', path=base, name=imp.name)

    def _export(self, module: str, name: str, guard=frozenset()) -> Tuple[Optional[Symbol], Optional[Value]]:
        """Resolve ``module.name`` as seen by an importer, following re-exports."""
        key = (module, name)
        if key in guard:
            return None, None
        guard = guard | {key}
        scope = self._module_scope(self.units[module])
        if name in scope.names:
            return self._resolve_in(scope, name, scope.names[name], guard)
        found = self._wildcard_lookup(scope, name, guard)
        return found if found is not None else (None, None)

    def _wildcard_lookup(self, scope: Scope, name: str, guard) -> Optional[Tuple[Optional[Symbol], Optional[Value]]]:
        if name.startswith('_'):
            return None
        for imp in scope.wildcards:
            base = self.resolver.absolute_name(scope.unit.package, scope.unit.is_init, imp.module)
            if base not in self.modules:
                continue
            sym, value = self._export(base, name, guard)
            if sym is not None or value is not None:
                return sym, value
        return None

    def _module_value(self, path: str) -> Value:
        return Value('module', path=path, loaded=path in self.modules)

    def _is_namespace(self, path: str) -> bool:
        prefix = path + '.'
        return any(m.startswith(prefix) for m in self.modules)

    # ------------------------------------------------------------------
    # Value inference
    # ------------------------------------------------------------------

    def _consensus(self, values: List[Optional[Value]]) -> Optional[Value]:
        if not values or any(v is None for v in values):
            return None
        first = values[0]
        return first if all(v == first for v in values[1:]) else None

    def _source_value(self, scope: Scope, source: tuple) -> Optional[Value]:
        kind, payload, where = source
        if where is not None:
            scope = self._scope_for(where)
        if kind == 'expr':
            return self._type_of(payload, scope) if payload is not None else None
        if kind == 'annotation':
            return self._annotation_value(payload, scope)
        if kind == 'self':
            return Value('instance', cls=payload)
        if kind == 'cls':
            return Value('class', cls=payload)
        return None

    def _name_type(self, scope: Scope, name: str) -> Optional[Value]:
        key = (id(scope), name)
        if key in self._name_memo:
            return self._name_memo[key]
        if key in self._in_progress:
            return None
        self._in_progress.add(key)
        try:
            result = self._consensus([self._source_value(scope, s) for s in scope.sources.get(name, [])])
        finally:
            self._in_progress.discard(key)
        self._name_memo[key] = result
        return result

    def _field_type(self, info: ClassInfo, name: str) -> Optional[Value]:
        key = (id(info), name)
        if key in self._name_memo:
            return self._name_memo[key]
        if key in self._in_progress:
            return None
        self._in_progress.add(key)
        try:
            class_scope = self._scope_for(info.entity)
            result = self._consensus([self._source_value(class_scope, s)
                                      for s in info.field_sources.get(name, [])])
        finally:
            self._in_progress.discard(key)
        self._name_memo[key] = result
        return result

    def _return_value(self, sym: Symbol) -> Optional[Value]:
        if id(sym) in self._return_memo:
            return self._return_memo[id(sym)]
        entity = self._entity_of.get(id(sym))
        result = None
        if entity is not None and entity.definition is not None:
            annotation = entity.definition.child_by_field_name('return_type')
            if annotation is not None:
                scope = self._scope_for(entity.parent, self._unit_of[id(entity)])
                result = self._annotation_value(annotation, scope)
                if is_async(entity.definition):
                    result = Value('coroutine', inner=result) if result is not None else None
        self._return_memo[id(sym)] = result
        return result

    def _type_of(self, node: Optional[Node], scope: Scope) -> Optional[Value]:
        if node is None:
            return None
        key = (scope.unit.package, node_key(node), id(scope))
        if key in self._type_memo:
            return self._type_memo[key]
        self._type_memo[key] = None
        result = self._infer(node, scope)
        self._type_memo[key] = result
        return result

    def _infer(self, node: Node, scope: Scope) -> Optional[Value]:
        t = node.type
        if t == 'identifier':
            return self._resolve_name(node_text(node), scope)[1]
        if t == 'attribute':
            base = self._type_of(node.child_by_field_name('object'), scope)
            return self._member(base, node_text(node.child_by_field_name('attribute')))[1]
        if t == 'call':
            return self._call_value(node, scope)
        if t == 'parenthesized_expression' and node.named_children:
            return self._type_of(node.named_children[0], scope)
        if t == 'await' and node.named_children:
            inner = self._type_of(node.named_children[0], scope)
            return inner.inner if inner is not None and inner.kind == 'coroutine' else None
        if t == 'subscript':
            base = self._type_of(node.child_by_field_name('value'), scope)
            return base if base is not None and base.kind == 'class' else None
        if t in LITERAL_TYPES:
            return Value('builtin_instance', name=LITERAL_TYPES[t])
        return None

    def _call_value(self, call: Node, scope: Scope) -> Optional[Value]:
        function = call.child_by_field_name('function')
        if function is None:
            return None
        if function.type == 'identifier' and node_text(function) == 'super':
            sym, _ = self._resolve_name('super', scope)
            if sym is not None and sym.kind == SymbolKind.BUILTIN:
                info = self._enclosing_class(scope)
                return Value('super', cls=info) if info is not None else None

        callee = self._type_of(function, scope)
        if callee is None:
            return None
        if callee.kind == 'class':
            return Value('instance', cls=callee.cls)
        if callee.kind == 'func':
            return self._return_value(callee.symbol)
        if callee.kind == 'external' and callee.name.rsplit('.', 1)[-1][:1].isupper():
            return Value('external_instance', path=callee.path, name=callee.name)
        if callee.kind == 'builtin' and callee.name in BUILTIN_TYPES:
            return Value('builtin_instance', name=callee.name)
        return None

    def _enclosing_class(self, scope: Scope) -> Optional[ClassInfo]:
        current = scope
        while current is not None:
            owner = current.owner
            if current.kind == 'function' and owner is not None and owner.kind == SymbolKind.METHOD:
                return self._class_info(owner.parent)
            current = current.parent
        return None

    # ------------------------------------------------------------------
    # Member lookup
    # ------------------------------------------------------------------

    def _member(self, base: Optional[Value], attr: str) -> Tuple[Optional[Symbol], Optional[Value], Optional[Tuple[Symbol, bool]]]:
        """Look up ``attr`` on a value; returns (symbol, value, (receiver, via_class))."""
        if base is None or not attr:
            return None, None, None
        kind = base.kind

        if kind == 'module':
            submodule = f"{base.path}.{attr}"
            if submodule in self.modules:
                return None, Value('module', path=submodule, loaded=True), None
            if base.path in self.modules:
                sym, value = self._export(base.path, attr)
                return sym, value, None
            if self._is_namespace(base.path):
                return None, None, None
            return self._external(base.path, attr), Value('external', path=base.path, name=attr), None

        if kind == 'external':
            name = f"{base.name}.{attr}"
            return self._external(base.path, name), Value('external', path=base.path, name=name), None
        if kind == 'external_instance':
            return self._external(base.path, f"{base.name}.{attr}"), None, None
        if kind in ('builtin', 'builtin_instance'):
            return self._builtin(f"{base.name}.{attr}"), None, None

        if kind in ('class', 'instance', 'super'):
            info = base.cls
            found = self._lookup_member(info, attr, skip_self=kind == 'super')
            if found is None:
                return None, None, None
            owner, sym = found
            return sym, self._member_value(owner, sym, attr, kind), (info.symbol, kind == 'class')

        return None, None, None

    def _member_value(self, owner: Optional[ClassInfo], sym: Symbol, attr: str, access: str) -> Optional[Value]:
        if sym.kind == SymbolKind.METHOD:
            entity = self._entity_of.get(id(sym))
            decorators = {d.rsplit('.', 1)[-1] for d in entity.decorators} if entity is not None else set()
            if access != 'class' and decorators & PROPERTY_DECORATORS:
                return self._return_value(sym)
            return Value('func', symbol=sym)
        if sym.kind in CLASS_KINDS:
            entity = self._entity_of.get(id(sym))
            return Value('class', cls=self._class_info(entity)) if entity is not None else None
        if sym.kind == SymbolKind.FIELD and owner is not None:
            return self._field_type(owner, attr)
        return None

    def _lookup_member(self, info: ClassInfo, attr: str, skip_self: bool = False) -> Optional[Tuple[Optional[ClassInfo], Symbol]]:
        """Find ``attr`` along the MRO; project classes first, then an external base."""
        entries = self._mro(info)
        if skip_self:
            entries = entries[1:]
        fallback = None
        unknown = False
        for entry in entries:
            if isinstance(entry, ClassInfo):
                if attr in entry.members:
                    return entry, entry.members[attr]
            elif entry is None:
                unknown = True
            elif fallback is None:
                fallback = entry
        if fallback is None or unknown:
            return None
        if fallback.kind == 'builtin':
            return None, self._builtin(f"{fallback.name}.{attr}")
        return None, self._external(fallback.path, f"{fallback.name}.{attr}")

    def _mro(self, info: ClassInfo) -> list:
        if info.mro is not None:
            return info.mro
        result: list = []
        seen: Set[int] = set()

        def visit(current: ClassInfo):
            if id(current) in seen:
                return
            seen.add(id(current))
            result.append(current)
            for base in self._bases(current):
                if isinstance(base, ClassInfo):
                    visit(base)
                else:
                    result.append(base)

        info.mro = result  # guards against inheritance cycles while computing
        visit(info)
        info.mro = result
        return result

    def _bases(self, info: ClassInfo) -> list:
        scope = self._scope_for(info.entity.parent, info.unit)
        bases = []
        for node in info.entity.base_classes:
            if node.type == 'subscript':
                node = node.child_by_field_name('value')
            value = self._type_of(node, scope)
            if value is None:
                bases.append(None)
            elif value.kind == 'class':
                bases.append(value.cls)
            elif value.kind == 'external':
                if value.name.rsplit('.', 1)[-1] not in IGNORED_BASES:
                    bases.append(value)
            elif value.kind == 'builtin':
                if value.name != 'object':
                    bases.append(value)
            else:
                bases.append(None)
        return bases

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def _annotation_value(self, node: Optional[Node], scope: Scope) -> Optional[Value]:
        """Value of an instance described by a type annotation."""
        if node is None:
            return None
        t = node.type
        if t == 'type':
            return self._annotation_value(node.named_children[0], scope) if node.named_children else None
        if t in ('identifier', 'attribute', 'member_type'):
            return self._instance_of(self._class_value(node, scope))
        if t in ('subscript', 'generic_type'):
            base, args = self._generic_parts(node)
            if base is None:
                return None
            base_name = node_text(base).rsplit('.', 1)[-1]
            if base_name in WRAPPER_TYPES:
                return self._annotation_value(args[0], scope) if args else None
            if base_name == 'Union':
                return self._union_value(args, scope)
            if base_name in ('Type', 'type'):
                value = self._class_value(args[0], scope) if args else None
                return value if value is not None and value.kind == 'class' else None
            return self._instance_of(self._class_value(base, scope))
        if t == 'union_type' or (t == 'binary_operator' and
                                  node_text(node.child_by_field_name('operator')) == '|'):
            return self._union_value(self._union_members(node), scope)
        if t == 'string':
            return self._string_annotation(node, scope)
        return None

    def _class_value(self, node: Optional[Node], scope: Scope) -> Optional[Value]:
        """Value of a type expression naming a class (not an instance)."""
        if node is None:
            return None
        if node.type == 'type':
            return self._class_value(node.named_children[0], scope) if node.named_children else None
        if node.type == 'identifier':
            return self._resolve_name(node_text(node), scope)[1]
        if node.type == 'attribute':
            return self._type_of(node, scope)
        if node.type == 'member_type':
            parts = node.named_children
            if len(parts) < 2:
                return None
            return self._member(self._class_value(parts[0], scope), node_text(parts[-1]))[1]
        return None

    @staticmethod
    def _instance_of(value: Optional[Value]) -> Optional[Value]:
        if value is None:
            return None
        if value.kind == 'class':
            return Value('instance', cls=value.cls)
        if value.kind == 'external':
            return Value('external_instance', path=value.path, name=value.name)
        if value.kind == 'builtin' and value.name in BUILTIN_TYPES:
            return Value('builtin_instance', name=value.name)
        return None

    @staticmethod
    def _generic_parts(node: Node) -> Tuple[Optional[Node], List[Node]]:
        if node.type == 'subscript':
            return node.child_by_field_name('value'), node.children_by_field_name('subscript')
        named = node.named_children
        if not named:
            return None, []
        params = [c for c in named if c.type == 'type_parameter']
        args = params[0].named_children if params else []
        return named[0], args

    def _union_members(self, node: Node) -> List[Node]:
        if node.type == 'type' and node.named_children:
            return self._union_members(node.named_children[0])
        if node.type == 'union_type':
            members = []
            for child in node.named_children:
                members.extend(self._union_members(child))
            return members
        if node.type == 'binary_operator' and node_text(node.child_by_field_name('operator')) == '|':
            return self._union_members(node.child_by_field_name('left')) + \
                self._union_members(node.child_by_field_name('right'))
        return [node]

    def _union_value(self, members: List[Node], scope: Scope) -> Optional[Value]:
        members = [m for m in members if node_text(m) != 'None']
        if len(members) != 1:
            return None
        return self._annotation_value(members[0], scope)

    def _string_annotation(self, node: Node, scope: Scope) -> Optional[Value]:
        literal = _STRING_LITERAL.match(node_text(node).strip())
        if literal is None:
            return None
        match = _STRING_ANNOTATION.match(literal.group(2))
        if match is None:
            return None
        parts = match.group(1).split('.')
        value = self._resolve_name(parts[0], scope)[1]
        for part in parts[1:]:
            value = self._member(value, part)[1]
        return self._instance_of(value)

    # ------------------------------------------------------------------
    # Binding walk
    # ------------------------------------------------------------------

    def _bind(self, node: Node, scope: Scope):
        t = node.type
        if t == 'identifier':
            self._bind_identifier(node, scope)
            return
        if t in SKIPPED_STATEMENTS:
            return
        if t == 'attribute':
            self._bind(node.child_by_field_name('object'), scope)
            self._bind_attribute(node, node.child_by_field_name('attribute'),
                                 self._type_of(node.child_by_field_name('object'), scope))
            return
        if t == 'member_type':
            parts = node.named_children
            if parts:
                self._bind(parts[0], scope)
            if len(parts) >= 2:
                self._bind_attribute(node, parts[-1], self._class_value(parts[0], scope))
            return
        if t == 'keyword_argument':
            value = node.child_by_field_name('value')
            if value is not None:
                self._bind(value, scope)
            return
        if t == 'function_definition':
            self._bind_function(node, scope)
            return
        if t == 'class_definition':
            self._bind_class(node, scope)
            return
        if t == 'lambda':
            self._bind_lambda(node, scope)
            return
        if t in COMPREHENSIONS:
            self._bind_comprehension(node, scope)
            return
        for child in node.named_children:
            self._bind(child, scope)

    def _bind_identifier(self, ident: Node, scope: Scope):
        if self._is_binding_occurrence(ident):
            return
        sym, _ = self._resolve_name(node_text(ident), scope)
        if sym is not None:
            self._uses[ident.start_byte] = sym

    def _bind_attribute(self, node: Node, attr: Optional[Node], base: Optional[Value]):
        if attr is None:
            return
        sym, _, selection = self._member(base, node_text(attr))
        if sym is None:
            return
        self._uses[attr.start_byte] = sym
        if selection is not None:
            receiver, via_class = selection
            self._selections[attr.start_byte] = Selection(receiver=receiver, obj=sym, via_class=via_class)

    @staticmethod
    def _is_binding_occurrence(ident: Node) -> bool:
        """True for identifiers that declare or bind a name rather than use it."""
        parent = ident.parent
        if parent is None:
            return False
        pt = parent.type
        if pt in ('function_definition', 'class_definition'):
            return same_node(parent.child_by_field_name('name'), ident)
        if pt in ('parameters', 'lambda_parameters'):
            return True
        if pt == 'typed_parameter':
            return same_node(parent.named_children[0] if parent.named_children else None, ident)
        if pt in ('default_parameter', 'typed_default_parameter'):
            return same_node(parent.child_by_field_name('name'), ident)
        if pt in ('list_splat_pattern', 'dictionary_splat_pattern') and parent.parent is not None and \
                parent.parent.type in ('parameters', 'lambda_parameters', 'typed_parameter'):
            return True
        if pt == 'keyword_argument':
            return same_node(parent.child_by_field_name('name'), ident)
        if pt == 'as_pattern_target':
            return True
        if pt == 'as_pattern':
            return same_node(parent.child_by_field_name('alias'), ident)
        if pt == 'named_expression':
            return same_node(parent.child_by_field_name('name'), ident)
        if pt == 'except_clause':
            return same_node(Binder._except_alias(parent), ident)
        if pt in ('type_parameter',) and parent.parent is not None and \
                parent.parent.type in ('function_definition', 'class_definition'):
            return True

        node = ident
        while node.parent is not None and node.parent.type in PATTERN_CONTAINERS:
            node = node.parent
        owner = node.parent
        if owner is not None and owner.type in TARGET_OWNERS:
            return same_node(owner.child_by_field_name('left'), node)
        return False

    def _bind_function(self, definition: Node, scope: Scope):
        params = definition.child_by_field_name('parameters')
        if params is not None:
            for p in params.named_children:
                for name in ('type', 'value'):
                    sub = p.child_by_field_name(name)
                    if sub is not None:
                        self._bind(sub, scope)
        return_type = definition.child_by_field_name('return_type')
        if return_type is not None:
            self._bind(return_type, scope)

        entity = self._entity_for_definition(scope.unit, definition)
        body = definition.child_by_field_name('body')
        if body is None:
            return
        if entity is None:
            logger.debug("No declaration for definition at %s:%d", scope.unit.path, definition.start_point[0] + 1)
            return
        function_scope = self._scope_for(entity)
        self._bind(body, function_scope)

    def _bind_class(self, definition: Node, scope: Scope):
        superclasses = definition.child_by_field_name('superclasses')
        if superclasses is not None:
            self._bind(superclasses, scope)
        entity = self._entity_for_definition(scope.unit, definition)
        body = definition.child_by_field_name('body')
        if body is None or entity is None:
            return
        self._bind(body, self._scope_for(entity))

    def _bind_lambda(self, node: Node, scope: Scope):
        params = node.child_by_field_name('parameters')
        lambda_scope = Scope('function', scope.unit, scope, scope.owner)
        self._live_scopes.append(lambda_scope)
        for ident, _ in parameter_names(params):
            name = node_text(ident)
            lambda_scope.names[name] = self._local_symbol(lambda_scope, name, ident)
            lambda_scope.sources[name] = [('unknown', None, None)]
        if params is not None:
            for p in params.named_children:
                value = p.child_by_field_name('value')
                if value is not None:
                    self._bind(value, scope)
        body = node.child_by_field_name('body')
        if body is not None:
            self._bind(body, lambda_scope)

    def _bind_comprehension(self, node: Node, scope: Scope):
        comp_scope = Scope('comprehension', scope.unit, scope, scope.owner)
        self._live_scopes.append(comp_scope)
        for clause in node.named_children:
            if clause.type != 'for_in_clause':
                continue
            for ident in target_identifiers(clause.child_by_field_name('left')):
                name = node_text(ident)
                if name not in comp_scope.names:
                    comp_scope.names[name] = self._local_symbol(comp_scope, name, ident)
                comp_scope.sources.setdefault(name, []).append(('unknown', None, None))
        for child in node.named_children:
            self._bind(child, comp_scope)
