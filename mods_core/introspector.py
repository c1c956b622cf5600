"""
Module introspection.

Recovers a Mods module's declared name and typed input/output ports from its
source.  Mods modules are self-describing scripts, usually an IIFE that
returns an object literal::

    (function(){
    var name = 'read png'
    var inputs = {}
    var outputs = {
       image:{type:'RGBA', event:function(){...}}}
    ...
    return ({name:name, init:init, inputs:inputs, outputs:outputs, interface:interface})
    }())

Two strategies are tried in order:

* structural - parse with esprima and read the returned object literal from
  the AST, following identifiers back to their ``var`` declarations.  Nothing
  is executed, so modules that touch the DOM at load time parse fine.
* pattern    - regex scan for ``name = '...'`` and the ``inputs`` / ``outputs``
  blocks, for sources esprima rejects or whose shape it cannot follow.

Introspection never raises: a module neither strategy understands comes back
with ``method == FAILED`` and an error message.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import esprima

from .exceptions import IntrospectionError, StorageError
from .models import ModuleDefinition, IntrospectionMethod

logger = logging.getLogger(__name__)

_MAX_RESOLVE_DEPTH = 8

_STRICT_DIRECTIVE = re.compile(r"""(['"])use strict\1""")

Node = Dict[str, Any]


# ─────────────────────────────────────────────────────────────────────
# Structural strategy
# ─────────────────────────────────────────────────────────────────────

class StructuralExtractor:
    """Reads a module descriptor out of an esprima AST."""

    def extract(self, source: str) -> Tuple[str, Dict[str, Dict[str, str]], Dict[str, Dict[str, str]]]:
        descriptor, scope = self._find_descriptor(self._parse(source))
        props = self._properties(descriptor)

        if 'name' not in props:
            raise IntrospectionError("Module descriptor has no name property")
        name = self._string_value(self._resolve(props['name'], scope))
        if name is None:
            raise IntrospectionError("Module name is not a string literal")

        inputs = self._ports(props.get('inputs'), scope)
        outputs = self._ports(props.get('outputs'), scope)
        return name, inputs, outputs

    @staticmethod
    def _parse(source: str) -> Node:
        try:
            return esprima.parseScript(source, {'range': True}).toDict()
        except Exception as e:  # esprima raises its own Error type plus assorted internals
            if not _STRICT_DIRECTIVE.search(source):
                raise IntrospectionError(f"Parse failed: {e}")
            error = e

        # strict mode reserves words modules use as names, e.g. `var interface`
        relaxed = _STRICT_DIRECTIVE.sub(lambda m: ' ' * len(m.group(0)), source)
        try:
            return esprima.parseScript(relaxed, {'range': True}).toDict()
        except Exception:  # same esprima failure modes as above
            raise IntrospectionError(f"Parse failed: {error}")

    def _find_descriptor(self, program: Node) -> Tuple[Node, Dict[str, Node]]:
        for statement in program.get('body') or []:
            if statement.get('type') != 'ExpressionStatement':
                continue
            expression = statement.get('expression') or {}
            if expression.get('type') == 'ObjectExpression':
                return expression, {}

            function = self._iife_function(expression)
            if function is None:
                continue
            body = self._function_body(function)
            scope = self._collect_scope(body)
            returned = self._returned_value(function, body)
            if returned is None:
                continue
            returned = self._resolve(returned, scope)
            if returned.get('type') == 'ObjectExpression':
                return returned, scope
        raise IntrospectionError("No module descriptor object found")

    @staticmethod
    def _iife_function(expression: Node) -> Optional[Node]:
        if expression.get('type') == 'UnaryExpression':
            expression = expression.get('argument') or {}
        if expression.get('type') != 'CallExpression':
            return None
        callee = expression.get('callee') or {}
        if callee.get('type') in ('FunctionExpression', 'ArrowFunctionExpression'):
            return callee
        return None

    @staticmethod
    def _function_body(function: Node) -> List[Node]:
        body = function.get('body') or {}
        if body.get('type') == 'BlockStatement':
            return body.get('body') or []
        return []

    @staticmethod
    def _returned_value(function: Node, body: List[Node]) -> Optional[Node]:
        # arrow function with an expression body: () => ({...})
        if function.get('expression') and (function.get('body') or {}).get('type') != 'BlockStatement':
            return function.get('body')
        returned = None
        for statement in body:
            if statement.get('type') == 'ReturnStatement' and statement.get('argument'):
                returned = statement['argument']
        return returned

    @staticmethod
    def _collect_scope(body: List[Node]) -> Dict[str, Node]:
        """Map top-level variable names of a function body to their latest value."""
        scope: Dict[str, Node] = {}
        for statement in body:
            kind = statement.get('type')
            if kind == 'VariableDeclaration':
                for declarator in statement.get('declarations') or []:
                    target = declarator.get('id') or {}
                    if target.get('type') == 'Identifier' and declarator.get('init'):
                        scope[target['name']] = declarator['init']
            elif kind == 'ExpressionStatement':
                expression = statement.get('expression') or {}
                if expression.get('type') == 'AssignmentExpression' and expression.get('operator') == '=':
                    target = expression.get('left') or {}
                    if target.get('type') == 'Identifier':
                        scope[target['name']] = expression.get('right')
        return scope

    def _resolve(self, node: Optional[Node], scope: Dict[str, Node]) -> Node:
        depth = 0
        while node and node.get('type') == 'Identifier' and node.get('name') in scope:
            node = scope[node['name']]
            depth += 1
            if depth > _MAX_RESOLVE_DEPTH:
                raise IntrospectionError("Identifier chain too deep")
        return node or {}

    @staticmethod
    def _key_name(prop: Node) -> Optional[str]:
        key = prop.get('key') or {}
        if prop.get('computed'):
            return None
        if key.get('type') == 'Identifier':
            return key.get('name')
        if key.get('type') == 'Literal':
            return str(key.get('value'))
        return None

    def _properties(self, obj: Node) -> Dict[str, Node]:
        props: Dict[str, Node] = {}
        for prop in obj.get('properties') or []:
            if prop.get('type') != 'Property':
                continue
            key = self._key_name(prop)
            if key is not None:
                props[key] = prop.get('value') or {}
        return props

    @staticmethod
    def _string_value(node: Node) -> Optional[str]:
        if node.get('type') == 'Literal' and isinstance(node.get('value'), str):
            return node['value']
        if node.get('type') == 'TemplateLiteral' and not node.get('expressions'):
            quasis = node.get('quasis') or []
            return ''.join((q.get('value') or {}).get('cooked') or '' for q in quasis)
        return None

    def _ports(self, node: Optional[Node], scope: Dict[str, Node]) -> Dict[str, Dict[str, str]]:
        if node is None:
            return {}
        node = self._resolve(node, scope)
        if node.get('type') != 'ObjectExpression':
            raise IntrospectionError(f"Port block is a {node.get('type')}, not an object literal")

        ports: Dict[str, Dict[str, str]] = {}
        for port_name, value in self._properties(node).items():
            value = self._resolve(value, scope)
            port_type = ''
            if value.get('type') == 'ObjectExpression':
                type_node = self._properties(value).get('type')
                if type_node is not None:
                    port_type = self._string_value(self._resolve(type_node, scope)) or ''
            ports[port_name] = {'type': port_type}
        return ports


# ─────────────────────────────────────────────────────────────────────
# Pattern strategy
# ─────────────────────────────────────────────────────────────────────

_NAME_PATTERN = re.compile(r'''\bname\s*=\s*(['"])([^'"]*)\1''')
_BLOCK_PATTERN = r'\b{block}\s*=\s*\{{'
_PORT_PATTERN = re.compile(r'''([\w$]+)\s*:\s*\{[^}]*?\btype\s*:\s*(['"])([^'"]*)\2''')


def _brace_span(source: str, open_index: int) -> str:
    """Return the text between the brace at open_index and its match."""
    depth = 0
    quote = None
    i = open_index
    while i < len(source):
        ch = source[i]
        if quote:
            if ch == '\\':
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ('"', "'", '`'):
            quote = ch
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return source[open_index + 1:i]
        i += 1
    # unbalanced: take the rest of the file
    return source[open_index + 1:]


class PatternExtractor:
    """Regex-based fallback for sources the structural strategy rejects."""

    def extract(self, source: str) -> Tuple[Optional[str], Dict[str, Dict[str, str]], Dict[str, Dict[str, str]]]:
        name_match = _NAME_PATTERN.search(source)
        name = name_match.group(2) if name_match else None

        blocks = {}
        for block in ('inputs', 'outputs'):
            match = re.search(_BLOCK_PATTERN.format(block=block), source)
            if match:
                blocks[block] = self._ports(_brace_span(source, match.end() - 1))

        if name is None and not blocks:
            raise IntrospectionError("No name assignment or port blocks found")
        return name, blocks.get('inputs', {}), blocks.get('outputs', {})

    @staticmethod
    def _ports(span: str) -> Dict[str, Dict[str, str]]:
        ports = {}
        for match in _PORT_PATTERN.finditer(span):
            ports[match.group(1)] = {'type': match.group(3)}
        return ports


# ─────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────

class ModuleIntrospector:
    """Recovers module definitions, structural parse first, pattern scan second."""

    def __init__(self):
        self.structural = StructuralExtractor()
        self.pattern = PatternExtractor()

    def introspect(self, source: str) -> ModuleDefinition:
        try:
            name, inputs, outputs = self.structural.extract(source)
            return ModuleDefinition(name=name, inputs=inputs, outputs=outputs,
                                    method=IntrospectionMethod.STRUCTURAL)
        except IntrospectionError as e:
            logger.debug(f"Structural introspection failed, trying pattern scan: {e}")

        try:
            name, inputs, outputs = self.pattern.extract(source)
            return ModuleDefinition(name=name, inputs=inputs, outputs=outputs,
                                    method=IntrospectionMethod.PATTERN)
        except (IntrospectionError, re.error) as e:
            logger.warning(f"Module introspection failed: {e}")
            return ModuleDefinition(method=IntrospectionMethod.FAILED,
                                    error=f"Failed to parse module: {e}")

    def module_name(self, source: str) -> Optional[str]:
        definition = self.introspect(source)
        return definition.name if definition.ok else None


_default_introspector = ModuleIntrospector()


def introspect(source: str) -> ModuleDefinition:
    """Introspect module source with a shared introspector."""
    return _default_introspector.introspect(source)


def module_info(storage, path: str, include_source: bool = False) -> ModuleDefinition:
    """Read a module file from storage and introspect it.

    Raises StorageNotFoundError when the path does not exist; a module that
    fails to parse is still returned, with ``method == FAILED``.
    """
    source = storage.read_text(path)
    definition = introspect(source)
    definition.path = path
    if include_source:
        definition.source = source
    return definition


def list_modules(storage, category: Optional[str] = None) -> List[Dict[str, Any]]:
    """Nested category tree of module scripts under ``modules/``."""
    root = 'modules' if not category else f"modules/{category.strip('/')}"
    if not storage.exists(root):
        raise StorageError(f"Module category not found: {category}", {'category': category})

    def convert(entries):
        result = []
        for entry in entries:
            if entry['type'] == 'directory':
                result.append({
                    'name': entry['name'],
                    'type': 'category',
                    'children': convert(entry['children']),
                })
            elif entry['name'].endswith('.js') and entry['name'] != 'index.js':
                result.append({
                    'name': entry['name'][:-len('.js')],
                    'type': 'module',
                    'path': entry['path'],
                })
        return result

    return convert(storage.list_tree(root))
