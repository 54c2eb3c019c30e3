"""
Dusth Programming Language Parser
Recursive-descent grammar built with pyparsing, producing an AST of tagged nodes
"""

from typing import List, Any
from dataclasses import dataclass, field
import re

from pyparsing import (
    Forward, Keyword, Regex, Suppress, Group, Optional as PyParsingOptional,
    ZeroOrMore, MatchFirst, DelimitedList, ParseException, ParserElement
)

from error_handling import DusthParseError, parse_error_from_exception

# Enable packrat parsing for performance
ParserElement.enable_packrat()


# ============================================================================
# AST
# ============================================================================

PROGRAM = "PROGRAM"
EXPR_STMT = "EXPR_STMT"
LET = "LET"
BLOCK = "BLOCK"
IF = "IF"
LOOP = "LOOP"
RETURN = "RETURN"
BINARY = "BINARY"
UNARY = "UNARY"
LITERAL = "LITERAL"
IDENT = "IDENT"
CALL = "CALL"
FUNC = "FUNC"
INDEX = "INDEX"
ASSIGN = "ASSIGN"
EXTERN = "EXTERN"
IMPORT = "IMPORT"
LIST = "LIST"
MAP = "MAP"


@dataclass(frozen=True)
class Node:
    """One tagged element of the syntax tree.

    Layout by type:
      LITERAL   value is str, float, bool or None
      IDENT     value is the name
      LET       value is the name, children [expr]
      BINARY    value is the operator, children [lhs, rhs]
      UNARY     value is the operator, children [operand]
      ASSIGN    value is the operator, children [IDENT target, expr]
      CALL      value is the callee name and children the arguments, or
                value is None and children [callee expr, *arguments]
      FUNC      value is the name (None when anonymous), children
                [IDENT param, ..., BLOCK body]
      INDEX     children [container, index]
      IF        children [cond, then, else?]
      LOOP      children [cond, body]
      RETURN    children [expr] or []
      MAP       value is the list of keys, children the values
      EXTERN    value is the module name
      IMPORT    value is the path
    """
    type: str
    value: Any = None
    children: List['Node'] = field(default_factory=list)
    offset: int = 0

    def __str__(self) -> str:
        if self.children:
            children_str = ", ".join(str(child) for child in self.children)
            return f"{self.type}({self.value!r}, [{children_str}])"
        return f"{self.type}({self.value!r})"


def clone_node(node: Node) -> Node:
    """Deep copy of a subtree"""
    value = list(node.value) if isinstance(node.value, list) else node.value
    return Node(node.type, value, [clone_node(child) for child in node.children], node.offset)


# ============================================================================
# LEXICAL HELPERS
# ============================================================================

_NUMBER_PREFIX = re.compile(r'\d+(?:\.\d*)?')
_HEX_DIGITS = set("0123456789abcdefABCDEF")

ESCAPE_MAP = {
    'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', '"': '"'
}


def parse_number_text(text: str) -> float:
    """Longest leading decimal prefix as a double ("1.2.3" reads as 1.2)"""
    match = _NUMBER_PREFIX.match(text)
    return float(match.group(0)) if match else 0.0


def process_string_escapes(s: str) -> str:
    """Process escape sequences in string literals"""
    result = []
    i = 0
    while i < len(s):
        if s[i] == '\\' and i + 1 < len(s):
            next_char = s[i + 1]
            if next_char in ESCAPE_MAP:
                result.append(ESCAPE_MAP[next_char])
                i += 2
            elif next_char == 'x' and i + 4 <= len(s) and all(c in _HEX_DIGITS for c in s[i + 2:i + 4]):
                result.append(chr(int(s[i + 2:i + 4], 16)))
                i += 4
            else:
                # Unknown escape, keep as-is
                result.append(s[i])
                i += 1
        else:
            result.append(s[i])
            i += 1

    return ''.join(result)


# ============================================================================
# GRAMMAR
# ============================================================================

class DusthGrammar:
    """Dusth grammar definition using pyparsing"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._setup_grammar()

    def _setup_grammar(self):
        """Setup the grammar, one rule per precedence level"""

        expression = Forward()
        statement = Forward()
        block = Forward()

        LPAR, RPAR, LBRACE, RBRACE, LBRACK, RBRACK, COMMA, SEMI, DOT, COLON = map(Suppress, "(){}[],;.:")
        terminator = PyParsingOptional(SEMI)

        # Keywords
        let_kw, if_kw, else_kw, while_kw, return_kw, fn_kw, extern_kw, import_kw = (
            Keyword(kw) for kw in ("let", "if", "else", "while", "return", "fn", "extern", "import")
        )
        true_kw, false_kw, null_kw = Keyword("true"), Keyword("false"), Keyword("null")
        reserved = MatchFirst([
            let_kw, if_kw, else_kw, while_kw, return_kw, fn_kw, extern_kw, import_kw,
            true_kw, false_kw, null_kw
        ])

        identifier = (~reserved + Regex(r'[A-Za-z_][A-Za-z0-9_]*')).set_name("identifier")

        # Literals
        number = Regex(r'\d[\d.]*').set_name("number").set_parse_action(
            lambda s, loc, t: Node(LITERAL, parse_number_text(t[0]), [], loc)
        )
        string_text = Regex(r'"(?:[^"\\]|\\.)*"', flags=re.S).set_name("string").set_parse_action(
            lambda t: process_string_escapes(t[0][1:-1])
        )
        string_literal = Regex(r'"(?:[^"\\]|\\.)*"', flags=re.S).set_name("string").set_parse_action(
            lambda s, loc, t: Node(LITERAL, process_string_escapes(t[0][1:-1]), [], loc)
        )
        constant = (
            true_kw.copy().set_parse_action(lambda s, loc, t: Node(LITERAL, True, [], loc)) |
            false_kw.copy().set_parse_action(lambda s, loc, t: Node(LITERAL, False, [], loc)) |
            null_kw.copy().set_parse_action(lambda s, loc, t: Node(LITERAL, None, [], loc))
        )
        identifier_expr = (~reserved + Regex(r'[A-Za-z_][A-Za-z0-9_]*')).set_parse_action(
            lambda s, loc, t: Node(IDENT, t[0], [], loc)
        )

        # Compound literals
        list_literal = (
            LBRACK + Group(PyParsingOptional(DelimitedList(expression))) + RBRACK
        ).set_parse_action(lambda s, loc, t: Node(LIST, None, list(t[0]), loc))

        map_entry = Group((identifier | string_text) + COLON + expression)

        def make_map(s, loc, tokens):
            entries = list(tokens[0])
            return Node(MAP, [entry[0] for entry in entries], [entry[1] for entry in entries], loc)

        map_literal = (
            LBRACE + Group(PyParsingOptional(DelimitedList(map_entry))) + RBRACE
        ).set_parse_action(make_map)

        params = Group(PyParsingOptional(DelimitedList(identifier)))

        def make_function(s, loc, tokens):
            tokens = list(tokens)
            body = tokens[-1]
            param_names = list(tokens[-2])
            name = tokens[0] if len(tokens) == 3 else None
            children = [Node(IDENT, p, [], loc) for p in param_names]
            children.append(body)
            return Node(FUNC, name, children, loc)

        function_expr = (
            Suppress(fn_kw) + PyParsingOptional(identifier) + LPAR + params + RPAR + block
        ).set_parse_action(make_function)

        parenthesized = LPAR + expression + RPAR

        primary = (
            number |
            string_literal |
            constant |
            list_literal |
            map_literal |
            function_expr |
            identifier_expr |
            parenthesized
        )

        # Postfix: call, index, member
        call_suffix = (
            LPAR + Group(PyParsingOptional(DelimitedList(expression))) + RPAR
        ).set_parse_action(lambda t: ("call", list(t[0])))
        index_suffix = (LBRACK + expression + RBRACK).set_parse_action(lambda t: ("index", t[0]))
        member_suffix = (DOT + identifier).set_parse_action(lambda s, loc, t: ("member", t[0], loc))

        def make_postfix(s, loc, tokens):
            node = tokens[0]
            for suffix in tokens[1:]:
                kind = suffix[0]
                if kind == "call":
                    if node.type == IDENT:
                        node = Node(CALL, node.value, suffix[1], node.offset)
                    else:
                        node = Node(CALL, None, [node] + suffix[1], node.offset)
                elif kind == "index":
                    node = Node(INDEX, None, [node, suffix[1]], node.offset)
                else:
                    key = Node(LITERAL, suffix[1], [], suffix[2])
                    node = Node(INDEX, None, [node, key], node.offset)
            return node

        postfix_expr = (
            primary + ZeroOrMore(call_suffix | index_suffix | member_suffix)
        ).set_parse_action(make_postfix)

        # Unary
        unary = Forward()
        unary <<= (
            (Regex(r'[-!](?!=)') + unary).set_parse_action(
                lambda s, loc, t: Node(UNARY, t[0], [t[1]], loc)
            ) |
            postfix_expr
        )

        # Binary levels (left-associative)
        def make_binary_chain(s, loc, tokens):
            tokens = list(tokens)
            node = tokens[0]
            for i in range(1, len(tokens), 2):
                node = Node(BINARY, tokens[i], [node, tokens[i + 1]], node.offset)
            return node

        def binary_level(operand, op_pattern: str, name: str):
            level = operand + ZeroOrMore(Regex(op_pattern) + operand)
            return level.set_name(name).set_parse_action(make_binary_chain)

        multiplicative = binary_level(unary, r'[*/%](?!=)', "multiplicative")
        additive = binary_level(multiplicative, r'[-+](?!=)', "additive")
        relational = binary_level(additive, r'<=|>=|<|>', "relational")
        equality = binary_level(relational, r'==|!=', "equality")

        # Assignment (right-associative, bare identifier target only)
        assignment = Forward()
        assign_op = Regex(r'[-+*/%]?=(?!=)').set_name("assignment operator")
        assignment <<= (
            (identifier + assign_op + assignment).set_parse_action(
                lambda s, loc, t: Node(ASSIGN, t[1], [Node(IDENT, t[0], [], loc), t[2]], loc)
            ) |
            equality
        )

        expression <<= assignment

        # Statements
        let_stmt = (
            Suppress(let_kw) + identifier + Suppress(Regex(r'=(?!=)')) + expression + terminator
        ).set_parse_action(lambda s, loc, t: Node(LET, t[0], [t[1]], loc))

        if_stmt = (
            Suppress(if_kw) + LPAR + expression + RPAR + block +
            PyParsingOptional(Suppress(else_kw) + (block | statement)) + terminator
        ).set_parse_action(lambda s, loc, t: Node(IF, None, list(t), loc))

        while_stmt = (
            Suppress(while_kw) + LPAR + expression + RPAR + block + terminator
        ).set_parse_action(lambda s, loc, t: Node(LOOP, None, list(t), loc))

        return_stmt = (
            Suppress(return_kw) + PyParsingOptional(expression) + terminator
        ).set_parse_action(lambda s, loc, t: Node(RETURN, None, list(t), loc))

        expr_stmt = (expression + terminator).set_parse_action(
            lambda s, loc, t: Node(EXPR_STMT, None, [t[0]], loc)
        )

        empty_stmt = SEMI

        statement <<= let_stmt | if_stmt | while_stmt | return_stmt | expr_stmt | empty_stmt

        block <<= (LBRACE + ZeroOrMore(statement) + RBRACE).set_name("block").set_parse_action(
            lambda s, loc, t: Node(BLOCK, None, list(t), loc)
        )

        # Top-level declarations
        fn_decl = (
            Suppress(fn_kw) + identifier + LPAR + params + RPAR + block + terminator
        ).set_parse_action(make_function)

        extern_decl = (
            Suppress(extern_kw) + identifier + LPAR + Suppress(params) + RPAR + terminator
        ).set_parse_action(lambda s, loc, t: Node(EXTERN, t[0], [], loc))

        import_stmt = (
            Suppress(import_kw) + string_text + terminator
        ).set_parse_action(lambda s, loc, t: Node(IMPORT, t[0], [], loc))

        top_level = import_stmt | fn_decl | extern_decl | statement

        program = ZeroOrMore(top_level).set_parse_action(
            lambda s, loc, t: Node(PROGRAM, None, list(t), 0)
        )
        program.ignore(Regex(r'//[^\n]*'))

        # Store the main parsers
        self.program = program
        self.statement = statement
        self.expression = expression
        self.block = block

    def parse_program(self, text: str, filename: str = "<input>") -> Node:
        """Parse a complete Dusth program"""
        try:
            result = self.program.parse_string(text, parse_all=True)
        except ParseException as e:
            raise parse_error_from_exception(e, text, filename) from None
        program = result[0]
        if self.debug:
            print(f"DEBUG: parsed {len(program.children)} top-level statements from {filename}")
        return program

    def parse_expression(self, text: str, filename: str = "<input>") -> Node:
        """Parse a single Dusth expression"""
        try:
            result = self.expression.parse_string(text, parse_all=True)
        except ParseException as e:
            raise parse_error_from_exception(e, text, filename) from None
        return result[0]


class DusthParser:
    """Main Dusth parser"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = DusthGrammar(debug)

    def parse_file(self, filepath: str) -> Node:
        """Parse a Dusth source file"""
        with open(filepath, 'r', encoding='utf-8') as f:
            content = f.read()
        return self.grammar.parse_program(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> Node:
        """Parse Dusth source code from string"""
        return self.grammar.parse_program(text, filename)

    def parse_expression(self, text: str, filename: str = "<input>") -> Node:
        """Parse a single Dusth expression"""
        return self.grammar.parse_expression(text, filename)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> DusthParser:
    """Create a Dusth parser"""
    return DusthParser(debug=debug)


def create_debug_parser() -> DusthParser:
    """Create a Dusth parser with debug enabled"""
    return DusthParser(debug=True)


_default_parser = None


def parse(source: str, filename: str = "<input>") -> Node:
    """Parse source text into a PROGRAM node, raising DusthParseError"""
    global _default_parser
    if _default_parser is None:
        _default_parser = create_parser()
    return _default_parser.parse_string(source, filename)


def pretty_print_ast(node: Node, indent: int = 0) -> str:
    """Pretty print an AST node for debugging"""
    result = "  " * indent + f"{node.type}"
    if node.value is not None:
        result += f"({repr(node.value)})"
    result += "\n"

    for child in node.children:
        result += pretty_print_ast(child, indent + 1)

    return result


__all__ = [
    "Node", "clone_node", "parse", "create_parser", "create_debug_parser",
    "DusthParser", "DusthGrammar", "DusthParseError", "pretty_print_ast",
]
