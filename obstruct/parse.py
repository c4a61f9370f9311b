"""Obstruct parser — recursive descent with precedence climbing for binaries."""

from __future__ import annotations

import sys

from .ast import (
    Assignment,
    BinaryExpr,
    Block,
    BoolLit,
    Call,
    CharLit,
    Delete,
    Expr,
    ExprStmt,
    FloatLit,
    ForLoop,
    FuncType,
    FunctionDecl,
    Identifier,
    IfChain,
    Index,
    IntLit,
    LambdaExpr,
    NamedType,
    Param,
    Pos,
    Print,
    Program,
    Return,
    Stmt,
    StrLit,
    TypeNode,
    UnaryExpr,
    UnitType,
    VarDecl,
    VecLit,
    WhileLoop,
)
from .errors import ParseError
from .tokens import (
    TK_CHAR,
    TK_EOF,
    TK_FLOAT,
    TK_IDENT,
    TK_INT,
    TK_OP,
    TK_STRING,
    Token,
)

# Binary operator precedence (higher binds tighter)
BIN_PREC: dict[str, int] = {
    "|": 1,
    "||": 1,
    "&": 2,
    "&&": 2,
    "==": 3,
    "!=": 3,
    "<": 3,
    "<=": 3,
    ">": 3,
    ">=": 3,
    "+": 4,
    "-": 4,
    "*": 5,
    "/": 5,
    "%": 5,
}

# Doubled spellings of the logical operators
LOGIC_ALIASES: dict[str, str] = {"&&": "&", "||": "|"}

# Deepest nesting of expressions, blocks and types the parser accepts
MAX_NESTING = 500

# Interpreter recursion headroom while parsing MAX_NESTING levels
PARSE_RECURSION_LIMIT = 20000


class Parser:
    """Recursive descent parser for Obstruct."""

    def __init__(self, tokens: list[Token]):
        self.tokens: list[Token] = tokens
        self.pos: int = 0
        self.depth: int = 0

    # ── Helpers ──────────────────────────────────────────────

    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[len(self.tokens) - 1]
        return self.tokens[idx]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type != TK_EOF:
            self.pos += 1
        return tok

    def at(self, value: str) -> bool:
        tok = self.current()
        return tok.value == value and tok.type in (TK_OP, value)

    def at_type(self, type_: str) -> bool:
        return self.current().type == type_

    def at_ident(self) -> bool:
        return self.current().type == TK_IDENT

    def expect(self, value: str) -> Token:
        if not self.at(value):
            raise self.error("expected '" + value + "', got " + self._describe())
        return self.advance()

    def expect_ident(self) -> Token:
        if not self.at_ident():
            raise self.error("expected identifier, got " + self._describe())
        return self.advance()

    def enter(self) -> None:
        """Count one level of nesting; deep input is a parse error, not a crash."""
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise self.error("expression nested too deeply")

    def leave(self) -> None:
        self.depth -= 1

    def error(self, msg: str) -> ParseError:
        return ParseError(msg, self._pos())

    def _describe(self) -> str:
        tok = self.current()
        if tok.type == TK_EOF:
            return "end of input"
        if tok.type == TK_STRING:
            return "string " + repr(tok.value)
        return "'" + tok.value + "'"

    def _pos(self) -> Pos:
        tok = self.current()
        return Pos(tok.line, tok.col)

    def _tok_pos(self, tok: Token) -> Pos:
        return Pos(tok.line, tok.col)

    # ── Top Level ────────────────────────────────────────────

    def parse_program(self) -> Program:
        stmts: list[Stmt] = []
        while not self.at_type(TK_EOF):
            if self.at("fn"):
                stmts.append(self.parse_fn_decl())
                continue
            stmt, tail = self.parse_stmt()
            if tail is not None:
                raise self.error("unexpected '}' at top level")
            stmts.append(stmt)
        return Program(stmts)

    def parse_fn_decl(self) -> FunctionDecl:
        pos = self._pos()
        self.expect("fn")
        name_tok = self.expect_ident()
        generics = self.parse_generic_params()
        params = self.parse_param_list()
        ret: TypeNode | None = None
        if self.at("->"):
            self.advance()
            ret = self.parse_type()
        body = self.parse_block()
        return FunctionDecl(pos, name_tok.value, generics, params, ret, body)

    def parse_generic_params(self) -> list[str]:
        names: list[str] = []
        if not self.at("<<"):
            return names
        self.advance()
        names.append(self.expect_ident().value)
        while self.at(","):
            self.advance()
            names.append(self.expect_ident().value)
        self.expect(">>")
        return names

    def parse_param_list(self) -> list[Param]:
        self.expect("(")
        params: list[Param] = []
        if not self.at(")"):
            params.append(self.parse_param())
            while self.at(","):
                self.advance()
                params.append(self.parse_param())
        self.expect(")")
        return params

    def parse_param(self) -> Param:
        pos = self._pos()
        mutable = False
        if self.at("@"):
            self.advance()
            mutable = True
        name_tok = self.expect_ident()
        self.expect(":")
        typ = self.parse_type()
        return Param(pos, name_tok.value, typ, mutable)

    # ── Types ────────────────────────────────────────────────

    def parse_type(self) -> TypeNode:
        self.enter()
        try:
            return self._parse_type()
        finally:
            self.leave()

    def _parse_type(self) -> TypeNode:
        pos = self._pos()
        if self.at("("):
            self.advance()
            self.expect(")")
            return UnitType(pos)
        if self.at("fn"):
            self.advance()
            self.expect("(")
            params: list[TypeNode] = []
            mutable: list[bool] = []
            while not self.at(")"):
                if params:
                    self.expect(",")
                is_mut = False
                if self.at("@"):
                    self.advance()
                    is_mut = True
                params.append(self.parse_type())
                mutable.append(is_mut)
            self.expect(")")
            ret: TypeNode | None = None
            if self.at("->"):
                self.advance()
                ret = self.parse_type()
            return FuncType(pos, params, mutable, ret)
        if not self.at_ident():
            raise self.error("expected type, got " + self._describe())
        name = self.advance().value
        args: list[TypeNode | int] = []
        if self.at("<<"):
            args = self.parse_type_args()
        return NamedType(pos, name, args)

    def parse_type_args(self) -> list[TypeNode | int]:
        """TypeArgs = '<<' ( Type | INT ) ( ',' ( Type | INT ) )* '>>'"""
        self.expect("<<")
        args: list[TypeNode | int] = [self.parse_type_arg()]
        while self.at(","):
            self.advance()
            args.append(self.parse_type_arg())
        self.expect(">>")
        return args

    def parse_type_arg(self) -> TypeNode | int:
        tok = self.current()
        if tok.type == TK_INT and not tok.suffix:
            self.advance()
            return int(tok.value)
        return self.parse_type()

    # ── Blocks and Statements ────────────────────────────────

    def parse_block(self) -> Block:
        self.enter()
        try:
            return self._parse_block()
        finally:
            self.leave()

    def _parse_block(self) -> Block:
        pos = self._pos()
        self.expect("{")
        stmts: list[Stmt] = []
        tail: Expr | None = None
        while not self.at("}"):
            if self.at_type(TK_EOF):
                raise self.error("expected '}', got end of input")
            if self.at("fn"):
                raise self.error(
                    "named functions are only allowed at top level; use 'lam'"
                )
            stmt, tail = self.parse_stmt()
            if tail is not None:
                break
            stmts.append(stmt)
        self.expect("}")
        return Block(pos, stmts, tail)

    def parse_stmt(self) -> tuple[Stmt, Expr | None]:
        """Parse one statement. The second item is set when it was an
        unterminated expression directly before '}' (the block's tail)."""
        pos = self._pos()
        if self.at("#") or self.at("#@"):
            return self.parse_var_decl(), None
        if self.at("del"):
            self.advance()
            name_tok = self.expect_ident()
            self.expect(";")
            return Delete(pos, name_tok.value), None
        if self.at("ret"):
            self.advance()
            value: Expr | None = None
            if not self.at(";"):
                value = self.parse_expr()
            self.expect(";")
            return Return(pos, value), None
        if self._at_block_like():
            expr = self.parse_block_like()
            if self.at(";"):
                self.advance()
                return ExprStmt(pos, expr), None
            if self.at("}"):
                return ExprStmt(pos, expr), expr
            return ExprStmt(pos, expr), None
        expr = self.parse_expr()
        if self.at("="):
            self.advance()
            if not isinstance(expr, (Identifier, Index)):
                raise ParseError("invalid assignment target", expr.pos)
            value = self.parse_expr()
            self.expect(";")
            return Assignment(pos, expr, value), None
        if self.at("}"):
            return ExprStmt(pos, expr), expr
        self.expect(";")
        return ExprStmt(pos, expr), None

    def parse_var_decl(self) -> VarDecl:
        pos = self._pos()
        mutable = self.advance().value == "#@"
        name_tok = self.expect_ident()
        typ: TypeNode | None = None
        value: Expr | None = None
        if self.at(":"):
            self.advance()
            typ = self.parse_type()
        if self.at("="):
            self.advance()
            value = self.parse_expr()
        self.expect(";")
        return VarDecl(pos, name_tok.value, mutable, typ, value)

    def _at_block_like(self) -> bool:
        return self.at("{") or self.at("?") or self.at("^^") or self.at("for")

    def parse_block_like(self) -> Expr:
        if self.at("{"):
            return self.parse_block()
        if self.at("?"):
            return self.parse_if_chain()
        if self.at("^^"):
            return self.parse_while()
        if self.at("for"):
            return self.parse_for()
        raise self.error("expected block, got " + self._describe())

    def parse_if_chain(self) -> IfChain:
        pos = self._pos()
        self.expect("?")
        branches: list[tuple[Expr, Block]] = []
        cond = self.parse_expr()
        branches.append((cond, self.parse_block()))
        while self.at("~?"):
            self.advance()
            cond = self.parse_expr()
            branches.append((cond, self.parse_block()))
        else_block: Block | None = None
        if self.at("~"):
            self.advance()
            else_block = self.parse_block()
        return IfChain(pos, branches, else_block)

    def parse_while(self) -> WhileLoop:
        pos = self._pos()
        self.expect("^^")
        cond = self.parse_expr()
        body = self.parse_block()
        return WhileLoop(pos, cond, body)

    def parse_for(self) -> ForLoop:
        pos = self._pos()
        self.expect("for")
        name_tok = self.expect_ident()
        self.expect("in")
        start = self.parse_binary(1)
        self.expect("..")
        end = self.parse_binary(1)
        body = self.parse_block()
        return ForLoop(pos, name_tok.value, start, end, body)

    # ── Expressions ──────────────────────────────────────────

    def parse_expr(self) -> Expr:
        """Expr = ( '$' | '$$' ) Expr | Binary"""
        self.enter()
        try:
            if self.at("$") or self.at("$$"):
                pos = self._pos()
                double = self.advance().value == "$$"
                return Print(pos, double, self.parse_expr())
            return self.parse_binary(1)
        finally:
            self.leave()

    def parse_binary(self, min_prec: int) -> Expr:
        """Precedence climbing over BIN_PREC; every level is left-associative."""
        left = self.parse_unary()
        while True:
            tok = self.current()
            if tok.type != TK_OP or tok.value not in BIN_PREC:
                return left
            prec = BIN_PREC[tok.value]
            if prec < min_prec:
                return left
            self.advance()
            right = self.parse_binary(prec + 1)
            op = LOGIC_ALIASES.get(tok.value, tok.value)
            left = BinaryExpr(left.pos, op, left, right)

    def parse_unary(self) -> Expr:
        """Unary = ( '-' | '!' ) Unary | Power"""
        if self.at("-") or self.at("!"):
            pos = self._pos()
            op = self.advance().value
            self.enter()
            try:
                operand = self.parse_unary()
            finally:
                self.leave()
            return UnaryExpr(pos, op, operand)
        return self.parse_power()

    def parse_power(self) -> Expr:
        """Power = Postfix ( '^' ( Unary | Postfix ) )*"""
        left = self.parse_postfix()
        while self.at("^"):
            self.advance()
            if self.at("-") or self.at("!"):
                right = self.parse_unary()
            else:
                right = self.parse_postfix()
            left = BinaryExpr(left.pos, "^", left, right)
        return left

    def parse_postfix(self) -> Expr:
        """Postfix = Primary ( '(' Args ')' | '[' Expr ']' )*"""
        expr = self.parse_primary()
        while True:
            if self.at("("):
                self.advance()
                args = self.parse_args(")")
                expr = Call(expr.pos, expr, args)
            elif self.at("["):
                self.advance()
                index = self.parse_expr()
                self.expect("]")
                expr = Index(expr.pos, expr, index)
            else:
                return expr

    def parse_args(self, closer: str) -> list[Expr]:
        args: list[Expr] = []
        if self.at(closer):
            self.advance()
            return args
        args.append(self.parse_expr())
        while self.at(","):
            self.advance()
            args.append(self.parse_expr())
        self.expect(closer)
        return args

    def parse_primary(self) -> Expr:
        tok = self.current()
        pos = self._tok_pos(tok)
        if tok.type == TK_INT:
            self.advance()
            return IntLit(pos, int(tok.value), tok.suffix)
        if tok.type == TK_FLOAT:
            self.advance()
            return FloatLit(pos, float(tok.value))
        if tok.type == TK_STRING:
            self.advance()
            return StrLit(pos, tok.value)
        if tok.type == TK_CHAR:
            self.advance()
            return CharLit(pos, tok.value)
        if tok.type == "true" or tok.type == "false":
            self.advance()
            return BoolLit(pos, tok.type == "true")
        if tok.type == "in" or tok.type == "quit":
            # Keyword-named builtins are only usable as calls
            self.advance()
            if not self.at("("):
                raise self.error("expected '(' after '" + tok.value + "'")
            return Identifier(pos, tok.value)
        if tok.type == TK_IDENT:
            return self.parse_path_or_generic_call()
        if self.at("("):
            self.advance()
            if self.at(")"):
                raise self.error("expected expression, got ')'")
            inner = self.parse_expr()
            self.expect(")")
            return inner
        if self.at("["):
            self.advance()
            return VecLit(pos, self.parse_args("]"))
        if self.at("lam"):
            return self.parse_lambda()
        if self._at_block_like():
            return self.parse_block_like()
        raise self.error("expected expression, got " + self._describe())

    def parse_path_or_generic_call(self) -> Expr:
        """Path = IDENT ( '::' IDENT )*, optionally followed by '<<' args '>>' '('."""
        first = self.advance()
        pos = self._tok_pos(first)
        name = first.value
        while self.at("::"):
            self.advance()
            if not self.at_ident():
                raise self.error("expected name after '::', got " + self._describe())
            name += "::" + self.advance().value
        ident = Identifier(pos, name)
        if not self.at("<<"):
            return ident
        saved = self.pos
        try:
            generics = self.parse_type_args()
        except ParseError:
            self.pos = saved
            return ident
        if not self.at("("):
            self.pos = saved
            return ident
        self.advance()
        args = self.parse_args(")")
        return Call(pos, ident, args, generics)

    def parse_lambda(self) -> LambdaExpr:
        pos = self._pos()
        self.expect("lam")
        generics = self.parse_generic_params()
        params = self.parse_param_list()
        ret: TypeNode | None = None
        if self.at("->"):
            self.advance()
            ret = self.parse_type()
        body = self.parse_block()
        return LambdaExpr(pos, generics, params, ret, body)


def parse_tokens(tokens: list[Token]) -> Program:
    saved = sys.getrecursionlimit()
    sys.setrecursionlimit(max(saved, PARSE_RECURSION_LIMIT))
    try:
        return Parser(tokens).parse_program()
    finally:
        sys.setrecursionlimit(saved)
