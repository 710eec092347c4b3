"""Declaration and import extraction from parsed syntax trees."""
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from tree_sitter import Node, Tree

from callscope.analyzer.program import NodeKey, node_key, node_text
from callscope.callgraph.symbols import Position, Symbol, SymbolKind

MODULE_DECLARATION = "<module>"

# Base-class names that make a class an interface (methods dispatch dynamically)
INTERFACE_BASES = {'Protocol', 'ABC'}
ABSTRACT_DECORATORS = {'abstractmethod', 'abstractproperty', 'abstractclassmethod', 'abstractstaticmethod'}

_CONST_NAME = re.compile(r'^_?[A-Z][A-Z0-9_]*$')


@dataclass
class Entity:
    """A declaration found in one module (function, method, class, variable, top level)."""
    name: str
    kind: SymbolKind
    node: Node  # region root: decorated_definition when decorated
    start_line: int
    end_line: int
    file_path: str
    symbol: Symbol
    definition: Optional[Node] = None  # function_definition / class_definition
    qualified_name: str = None  # e.g. ClassName.method_name, outer.inner
    parent_class: str = None  # Enclosing class name if this is a method
    parent: Optional['Entity'] = None  # Enclosing function/class entity
    base_classes: List[Node] = field(default_factory=list)
    decorators: List[str] = field(default_factory=list)
    is_interface: bool = False


@dataclass
class Import:
    """One name bound by an import statement.

    ``import a.b`` binds ``a`` (module ``a.b``); ``import a.b as x`` binds
    ``x``; ``from m import f as g`` binds ``g`` to member ``f`` of ``m``.
    """
    module: str  # as written, relative imports keep their leading dots
    name: Optional[str]  # imported member for from-imports
    alias: Optional[str]
    is_relative: bool
    line_number: int
    file_path: str
    wildcard: bool = False

    @property
    def bound_name(self) -> Optional[str]:
        if self.wildcard:
            return None
        if self.alias:
            return self.alias
        if self.name is not None:
            return self.name
        return self.module.split('.')[0]


def decorator_names(node: Node) -> List[str]:
    """Return the dotted names of decorators on a decorated_definition node."""
    names = []
    if node.type != 'decorated_definition':
        return names
    for child in node.children:
        if child.type != 'decorator':
            continue
        expr = child.named_children[0] if child.named_children else None
        if expr is not None and expr.type == 'call':
            expr = expr.child_by_field_name('function')
        names.append(node_text(expr))
    return names


def parse_import(node: Node, file_path: str = "") -> List[Import]:
    """Turn an import_statement / import_from_statement node into Import records."""
    line = node.start_point[0] + 1
    imports: List[Import] = []

    if node.type == 'import_statement':
        for child in node.children_by_field_name('name'):
            if child.type == 'aliased_import':
                module = node_text(child.child_by_field_name('name'))
                alias = node_text(child.child_by_field_name('alias'))
                imports.append(Import(module, None, alias, False, line, file_path))
            else:
                imports.append(Import(node_text(child), None, None, False, line, file_path))

    elif node.type == 'import_from_statement':
        module_node = node.child_by_field_name('module_name')
        module = node_text(module_node)
        is_relative = module.startswith('.')
        if any(c.type == 'wildcard_import' for c in node.children):
            imports.append(Import(module, None, None, is_relative, line, file_path, wildcard=True))
        for child in node.children_by_field_name('name'):
            if child.type == 'aliased_import':
                name = node_text(child.child_by_field_name('name'))
                alias = node_text(child.child_by_field_name('alias'))
                imports.append(Import(module, name, alias, is_relative, line, file_path))
            else:
                imports.append(Import(module, node_text(child), None, is_relative, line, file_path))

    return imports


class EntityExtractor:
    """Extract declarations and imports from one module's syntax tree."""

    IMPORT_TYPES = ('import_statement', 'import_from_statement')

    def __init__(self, package: str, file_path: str):
        """Initialize extractor for one file.

        Args:
            package: Dotted module path of the file (e.g. 'app.billing')
            file_path: Path of the file, used in positions
        """
        self.package = package
        self.file_path = file_path

    def extract_entities(self, tree: Tree) -> List[Entity]:
        """Extract every declaration with its qualified name.

        The first entity is always the module's top-level code. Functions and
        classes are extracted at any nesting depth; simple module-level
        assignments become variable/constant declarations.

        Args:
            tree: Parsed tree-sitter Tree

        Returns:
            List of Entity objects in source order
        """
        root = tree.root_node
        module_symbol = Symbol(
            kind=SymbolKind.MODULE,
            name=MODULE_DECLARATION,
            package=self.package,
            position=Position(self.file_path, 1, 0),
            qualified_name=MODULE_DECLARATION,
        )
        entities = [Entity(
            name=MODULE_DECLARATION,
            kind=SymbolKind.MODULE,
            node=root,
            start_line=1,
            end_line=root.end_point[0] + 1,
            file_path=self.file_path,
            symbol=module_symbol,
            qualified_name=MODULE_DECLARATION,
        )]

        for child in root.named_children:
            var = self._extract_variable(child)
            if var is not None:
                entities.append(var)

        self._extract_with_context(root, None, entities)
        return entities

    def _extract_with_context(self, node: Node, parent: Optional[Entity], entities: List[Entity]):
        """Recursively extract function and class definitions with their parent entity."""
        for child in node.children:
            target = child
            if child.type == 'decorated_definition':
                target = child.child_by_field_name('definition')
                if target is None:
                    continue

            if target.type in ('function_definition', 'class_definition'):
                entity = self._make_entity(child, target, parent)
                if entity is None:
                    continue
                entities.append(entity)
                body = target.child_by_field_name('body')
                if body is not None:
                    self._extract_with_context(body, entity, entities)
            else:
                self._extract_with_context(child, parent, entities)

    def _make_entity(self, region: Node, definition: Node, parent: Optional[Entity]) -> Optional[Entity]:
        name_node = definition.child_by_field_name('name')
        if name_node is None:
            return None
        name = node_text(name_node)
        decorators = decorator_names(region)

        parent_class = None
        abstract = False
        is_interface = False
        base_classes: List[Node] = []

        if definition.type == 'class_definition':
            base_classes = self._extract_base_classes(definition)
            is_interface = self._is_interface(definition)
            kind = SymbolKind.INTERFACE if is_interface else SymbolKind.TYPE
        elif parent is not None and parent.kind in (SymbolKind.TYPE, SymbolKind.INTERFACE):
            kind = SymbolKind.METHOD
            parent_class = parent.name
            short_decorators = {d.rsplit('.', 1)[-1] for d in decorators}
            abstract = bool(short_decorators & ABSTRACT_DECORATORS) or self._is_protocol_member(parent)
        else:
            kind = SymbolKind.FUNC

        qualified_name = f"{parent.qualified_name}.{name}" if parent is not None else name
        symbol = Symbol(
            kind=kind,
            name=name,
            package=self.package,
            position=Position(self.file_path, name_node.start_point[0] + 1, name_node.start_point[1]),
            qualified_name=qualified_name,
            receiver=parent_class,
            abstract=abstract,
        )
        return Entity(
            name=name,
            kind=kind,
            node=region,
            start_line=region.start_point[0] + 1,
            end_line=region.end_point[0] + 1,
            file_path=self.file_path,
            symbol=symbol,
            definition=definition,
            qualified_name=qualified_name,
            parent_class=parent_class,
            parent=parent,
            base_classes=base_classes,
            decorators=decorators,
            is_interface=is_interface,
        )

    def _extract_variable(self, statement: Node) -> Optional[Entity]:
        """Module-level ``NAME = value`` / ``NAME: T = value`` becomes a declaration."""
        if statement.type != 'expression_statement' or statement.named_child_count != 1:
            return None
        assignment = statement.named_children[0]
        if assignment.type != 'assignment':
            return None
        left = assignment.child_by_field_name('left')
        if left is None or left.type != 'identifier':
            return None

        name = node_text(left)
        kind = SymbolKind.CONST if _CONST_NAME.match(name) else SymbolKind.VAR
        symbol = Symbol(
            kind=kind,
            name=name,
            package=self.package,
            position=Position(self.file_path, left.start_point[0] + 1, left.start_point[1]),
            qualified_name=name,
        )
        return Entity(
            name=name,
            kind=kind,
            node=statement,
            start_line=statement.start_point[0] + 1,
            end_line=statement.end_point[0] + 1,
            file_path=self.file_path,
            symbol=symbol,
            qualified_name=name,
        )

    def _extract_base_classes(self, node: Node) -> List[Node]:
        """Positional base-class expressions of a class definition (keywords excluded)."""
        superclasses = node.child_by_field_name('superclasses')
        if superclasses is None:
            return []
        return [c for c in superclasses.named_children
                if c.type in ('identifier', 'attribute', 'subscript')]

    def _is_interface(self, node: Node) -> bool:
        superclasses = node.child_by_field_name('superclasses')
        if superclasses is None:
            return False
        for arg in superclasses.named_children:
            if arg.type == 'keyword_argument':
                if node_text(arg.child_by_field_name('name')) == 'metaclass' and \
                        node_text(arg.child_by_field_name('value')).endswith('ABCMeta'):
                    return True
                continue
            if arg.type == 'subscript':
                arg = arg.child_by_field_name('value')
            if node_text(arg).rsplit('.', 1)[-1] in INTERFACE_BASES:
                return True
        return False

    @staticmethod
    def _is_protocol_member(parent: Entity) -> bool:
        """Every method declared on a Protocol is an interface method."""
        for base in parent.base_classes:
            if base.type == 'subscript':
                base = base.child_by_field_name('value')
            if node_text(base).rsplit('.', 1)[-1] == 'Protocol':
                return True
        return False

    def extract_imports(self, tree: Tree) -> List[Import]:
        """Extract every import statement in the file, at any nesting depth."""
        imports = []
        for node in self._traverse(tree.root_node):
            if node.type in self.IMPORT_TYPES:
                imports.extend(parse_import(node, self.file_path))
        return imports

    def _traverse(self, node: Node) -> Iterator[Node]:
        """Iteratively traverse tree using a stack and yield all nodes."""
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            # Add children in reverse order to maintain left-to-right traversal
            stack.extend(reversed(current.children))


def declaration_roots(entities: List[Entity]) -> frozenset:
    """Region roots of all non-module declarations, used to partition walks."""
    return frozenset(node_key(e.node) for e in entities if e.kind != SymbolKind.MODULE)


def entities_by_definition(entities: List[Entity]) -> Dict[NodeKey, Entity]:
    """Map function/class definition nodes to their entity."""
    return {node_key(e.definition): e for e in entities if e.definition is not None}
