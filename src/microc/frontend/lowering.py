"""
µC Lowering
===========

Translates a checked AST into IR (see microc.frontend.ir).

Lowering Decisions
------------------
- Every read of a named scalar is copied into a fresh temporary, so
  each expression value lives in its own temporary
- char values used as int are zero-extended (zext); values stored into
  char are truncated (trunc); constants are converted at compile time
- && and || branch around their right operand and leave 0 or 1 in one
  temporary; the right operand is only evaluated when it decides
- x = y = e evaluates e once; the value of an assignment is the value
  actually stored
- Array arguments pass the array variable itself (its base address);
  array parameters have the decayed type T[]
- Every function ends with a return; non-void functions that can fall
  off their end (main, or lenient mode) return 0

Frame Layout
------------
Parameters first, one 4-byte slot each, then locals in declaration
order, each aligned to its element size (int 4, char 1). The frame size
is rounded up to a multiple of 4.

The lowerer trusts the checker: an expression without a resolved type
is a defect and raises InternalCompilerError.
"""

import logging
from typing import Optional

from microc.errors import InternalCompilerError
from microc.frontend.symbols import StorageClass, Symbol, SymbolTable
from microc.frontend.types import (
    TYPE_INT,
    WORD_SIZE,
    BaseType,
    CType,
    convert_constant,
)
from microc.frontend.ast import (
    ArraySubscript,
    AssignmentExpression,
    ASTVisitor,
    BinaryExpression,
    BinaryOperator,
    BlockStatement,
    CallExpression,
    CharLiteral,
    EmptyStatement,
    Expression,
    ExpressionStatement,
    FunctionNode,
    IdentifierExpression,
    IfStatement,
    NumberLiteral,
    ProgramNode,
    ReturnStatement,
    UnaryExpression,
    UnaryOperator,
    VariableDeclaration,
    WhileStatement,
)
from microc.frontend.ir import (
    BinaryOp,
    BinOp,
    Branch,
    Call,
    Cmp,
    Comparison,
    CondBranch,
    Constant,
    GlobalRef,
    Instruction,
    IRExternal,
    IRFunction,
    IRGlobal,
    IRProgram,
    IRSlot,
    Label,
    Load,
    LocalRef,
    Move,
    Operand,
    Return,
    Store,
    Temp,
    UnaryOp,
    UnOp,
    Variable,
)

logger = logging.getLogger(__name__)

ARITHMETIC_OPS = {
    BinaryOperator.ADD: BinaryOp.ADD,
    BinaryOperator.SUBTRACT: BinaryOp.SUB,
    BinaryOperator.MULTIPLY: BinaryOp.MUL,
    BinaryOperator.DIVIDE: BinaryOp.DIV,
}

COMPARISON_OPS = {
    BinaryOperator.LESS: Comparison.LT,
    BinaryOperator.LESS_EQ: Comparison.LE,
    BinaryOperator.GREATER: Comparison.GT,
    BinaryOperator.GREATER_EQ: Comparison.GE,
    BinaryOperator.EQUAL: Comparison.EQ,
    BinaryOperator.NOT_EQUAL: Comparison.NE,
}


def _align(offset: int, alignment: int) -> int:
    return (offset + alignment - 1) // alignment * alignment


class FunctionLowerer(ASTVisitor):
    """
    Lowers one function definition.

    Statements are lowered through visit_* methods; expressions through
    _lower_expression, which returns the operand holding the value.
    """

    def __init__(self, function: FunctionNode, symbols: SymbolTable):
        self.function = function
        self.symbols = symbols
        self.ir = IRFunction(function.name, function.return_type)
        self._slots: dict[str, IRSlot] = {}
        self._temp_counter = 0
        self._label_counter = 0

    def lower(self) -> IRFunction:
        self._layout_frame()
        self.visit(self.function.body)

        instructions = self.ir.instructions
        if not instructions or not isinstance(instructions[-1], Return):
            if self.function.return_type.is_void:
                self._emit(Return())
            else:
                self._emit(Return(Constant(0, self.function.return_type)))

        self.ir.temp_count = self._temp_counter
        return self.ir

    # =========================================================================
    # Helpers
    # =========================================================================

    def _emit(self, instruction: Instruction) -> None:
        self.ir.instructions.append(instruction)

    def _new_temp(self, ctype: CType) -> Temp:
        temp = Temp(self._temp_counter, ctype)
        self._temp_counter += 1
        return temp

    def _new_label(self, prefix: str) -> str:
        label = f"{prefix}{self._label_counter}"
        self._label_counter += 1
        return label

    def _layout_frame(self) -> None:
        offset = 0
        for param in self.function.parameters:
            slot = IRSlot(param.name, param.param_type, offset)
            self.ir.params.append(slot)
            self._slots[param.name] = slot
            offset += WORD_SIZE

        for decl in _local_declarations(self.function.body):
            offset = _align(offset, decl.var_type.alignment)
            slot = IRSlot(decl.name, decl.var_type, offset)
            self.ir.locals.append(slot)
            self._slots[decl.name] = slot
            offset += decl.var_type.size

        self.ir.frame_size = _align(offset, WORD_SIZE)

    def _variable(self, symbol: Symbol, node: Expression) -> Variable:
        if symbol is None:
            raise InternalCompilerError("identifier was not resolved", node)
        if symbol.storage == StorageClass.GLOBAL:
            return GlobalRef(symbol.name, symbol.type)
        slot = self._slots.get(symbol.name)
        if slot is None:
            raise InternalCompilerError(f"no frame slot for '{symbol.name}'", node)
        return slot.ref()

    def _convert(self, operand: Operand, target: CType) -> Operand:
        """Convert a scalar operand to `target` (zext or trunc as needed)."""
        source = operand.type
        if source.base_type == target.base_type:
            return operand
        if isinstance(operand, Constant):
            return Constant(convert_constant(operand.value, target), target)
        op = UnaryOp.TRUNC if target.base_type == BaseType.CHAR else UnaryOp.ZEXT
        dst = self._new_temp(target)
        self._emit(UnOp(op, dst, operand))
        return dst

    def _as_int(self, expr: Expression) -> Operand:
        return self._convert(self._lower_expression(expr), TYPE_INT)

    # =========================================================================
    # Statements
    # =========================================================================

    def visit_BlockStatement(self, node: BlockStatement):
        for stmt in node.statements:
            self.visit(stmt)

    def visit_EmptyStatement(self, node: EmptyStatement):
        pass

    def visit_ExpressionStatement(self, node: ExpressionStatement):
        self._lower_expression(node.expression)

    def visit_IfStatement(self, node: IfStatement):
        # else-if arms are lowered in a loop; their end labels close innermost first
        end_labels = []
        while True:
            then_label = self._new_label("if_then")
            end_label = self._new_label("if_end")
            else_label = self._new_label("if_else") if node.else_branch else end_label
            end_labels.append(end_label)

            cond = self._as_int(node.condition)
            self._emit(CondBranch(cond, then_label, else_label))

            self._emit(Label(then_label))
            self.visit(node.then_branch)
            if node.else_branch is None:
                break
            self._emit(Branch(end_label))
            self._emit(Label(else_label))
            if not isinstance(node.else_branch, IfStatement):
                self.visit(node.else_branch)
                break
            node = node.else_branch

        for end_label in reversed(end_labels):
            self._emit(Label(end_label))

    def visit_WhileStatement(self, node: WhileStatement):
        cond_label = self._new_label("while_cond")
        body_label = self._new_label("while_body")
        end_label = self._new_label("while_end")

        self._emit(Label(cond_label))
        cond = self._as_int(node.condition)
        self._emit(CondBranch(cond, body_label, end_label))
        self._emit(Label(body_label))
        self.visit(node.body)
        self._emit(Branch(cond_label))
        self._emit(Label(end_label))

    def visit_ReturnStatement(self, node: ReturnStatement):
        if node.value is None:
            self._emit(Return())
            return
        value = self._lower_expression(node.value)
        self._emit(Return(self._convert(value, self.function.return_type)))

    # =========================================================================
    # Expressions
    # =========================================================================

    def _lower_expression(self, expr: Expression) -> Optional[Operand]:
        """Lower `expr`; returns its value operand (None for void calls)."""
        if expr.resolved_type is None:
            raise InternalCompilerError("expression has no resolved type", expr)
        method = getattr(self, f"_lower_{expr.__class__.__name__}", None)
        if method is None:
            raise InternalCompilerError("no lowering for expression", expr)
        return method(expr)

    def _lower_NumberLiteral(self, expr: NumberLiteral) -> Operand:
        return Constant(expr.value, expr.resolved_type)

    def _lower_CharLiteral(self, expr: CharLiteral) -> Operand:
        return Constant(expr.value, expr.resolved_type)

    def _lower_IdentifierExpression(self, expr: IdentifierExpression) -> Operand:
        variable = self._variable(expr.symbol, expr)
        if variable.type.is_array:
            return variable
        dst = self._new_temp(variable.type)
        self._emit(Move(dst, variable))
        return dst

    def _array_base(self, expr: Expression) -> Variable:
        if not isinstance(expr, IdentifierExpression):
            raise InternalCompilerError("array base is not a variable", expr)
        variable = self._variable(expr.symbol, expr)
        if not variable.type.is_array:
            raise InternalCompilerError(f"'{expr.name}' is not an array", expr)
        return variable

    def _lower_ArraySubscript(self, expr: ArraySubscript) -> Operand:
        base = self._array_base(expr.array)
        index = self._as_int(expr.index)
        dst = self._new_temp(expr.resolved_type)
        self._emit(Load(dst, base, index))
        return dst

    def _lower_CallExpression(self, expr: CallExpression) -> Optional[Operand]:
        symbol = expr.symbol
        if symbol is None or not symbol.is_function:
            raise InternalCompilerError("call target was not resolved", expr)

        args = []
        for arg, param_type in zip(expr.arguments, symbol.type.param_types):
            if param_type.is_array:
                args.append(self._array_base(arg))
            else:
                args.append(self._convert(self._lower_expression(arg), param_type))

        dst = None
        if not symbol.type.return_type.is_void:
            dst = self._new_temp(symbol.type.return_type)
        self._emit(Call(expr.function_name, args, dst))
        return dst

    def _lower_UnaryExpression(self, expr: UnaryExpression) -> Operand:
        operand = self._as_int(expr.operand)
        if isinstance(operand, Constant):
            if expr.operator == UnaryOperator.NEGATE:
                return Constant(convert_constant(-operand.value, TYPE_INT), TYPE_INT)
            return Constant(int(operand.value == 0), TYPE_INT)

        op = UnaryOp.NEG if expr.operator == UnaryOperator.NEGATE else UnaryOp.NOT
        dst = self._new_temp(TYPE_INT)
        self._emit(UnOp(op, dst, operand))
        return dst

    def _lower_BinaryExpression(self, expr: BinaryExpression) -> Operand:
        """
        Lower a binary expression and the operator chain down its left side.

        The spine is walked top-down first (logical operators take their
        labels there), then the innermost left operand is lowered and the
        operators are applied bottom-up.
        """
        spine = []
        node: Expression = expr
        while isinstance(node, BinaryExpression):
            if node.resolved_type is None:
                raise InternalCompilerError("expression has no resolved type", node)
            logic = self._start_logical(node) if node.operator.is_logical else None
            spine.append((node, logic))
            node = node.left

        value = self._as_int(node)
        for binary, logic in reversed(spine):
            if logic is not None:
                value = self._finish_logical(binary, value, *logic)
                continue
            right = self._as_int(binary.right)
            dst = self._new_temp(TYPE_INT)
            if binary.operator in COMPARISON_OPS:
                self._emit(Cmp(COMPARISON_OPS[binary.operator], dst, value, right))
            else:
                self._emit(BinOp(ARITHMETIC_OPS[binary.operator], dst, value, right))
            value = dst
        return value

    def _start_logical(self, expr: BinaryExpression) -> tuple[str, str, str, Temp]:
        rhs_label = self._new_label("logic_rhs")
        short_label = self._new_label("logic_short")
        end_label = self._new_label("logic_end")
        return rhs_label, short_label, end_label, self._new_temp(TYPE_INT)

    def _finish_logical(
        self,
        expr: BinaryExpression,
        left: Operand,
        rhs_label: str,
        short_label: str,
        end_label: str,
        result: Temp,
    ) -> Operand:
        """
        a && b:                         a || b:
            cbr a, rhs, short               cbr a, short, rhs
          rhs:                            rhs:
            r <- cmp ne b, 0                r <- cmp ne b, 0
            br end                          br end
          short:                          short:
            r <- move 0                     r <- move 1
          end:                            end:
        """
        is_and = expr.operator == BinaryOperator.LOGICAL_AND
        if is_and:
            self._emit(CondBranch(left, rhs_label, short_label))
        else:
            self._emit(CondBranch(left, short_label, rhs_label))

        self._emit(Label(rhs_label))
        right = self._as_int(expr.right)
        self._emit(Cmp(Comparison.NE, result, right, Constant(0)))
        self._emit(Branch(end_label))

        self._emit(Label(short_label))
        self._emit(Move(result, Constant(0 if is_and else 1)))
        self._emit(Label(end_label))
        return result

    def _lower_AssignmentExpression(self, expr: AssignmentExpression) -> Operand:
        target = expr.target
        target_type = expr.resolved_type

        if isinstance(target, ArraySubscript):
            base = self._array_base(target.array)
            index = self._as_int(target.index)
            value = self._convert(self._lower_expression(expr.value), target_type)
            self._emit(Store(base, index, value))
            return value

        if isinstance(target, IdentifierExpression):
            variable = self._variable(target.symbol, target)
            value = self._convert(self._lower_expression(expr.value), target_type)
            self._emit(Move(variable, value))
            return value

        raise InternalCompilerError("assignment target is not an lvalue", expr)


def _local_declarations(block: BlockStatement) -> list[VariableDeclaration]:
    """All local declarations of a body, nested blocks included, in source order."""
    found = []
    stack = [block]
    while stack:
        node = stack.pop()
        if isinstance(node, BlockStatement):
            found.extend(node.declarations)
            stack.extend(reversed(node.statements))
        elif isinstance(node, IfStatement):
            if node.else_branch is not None:
                stack.append(node.else_branch)
            stack.append(node.then_branch)
        elif isinstance(node, WhileStatement):
            stack.append(node.body)
    return found


class Lowerer:
    """
    Lowers a checked program to an IRProgram.

    Usage:
        symbols = TypeChecker(diagnostics).check(program)
        ir = Lowerer(symbols).lower(program)
    """

    def __init__(self, symbols: SymbolTable):
        self.symbols = symbols

    def lower(self, program: ProgramNode) -> IRProgram:
        result = IRProgram()

        for decl in program.globals:
            result.globals.append(IRGlobal(decl.name, decl.var_type, decl.var_type.size))

        for decl in program.functions:
            if decl.is_definition:
                result.functions.append(FunctionLowerer(decl, self.symbols).lower())

        for symbol in self.symbols.global_scope.symbols.values():
            if symbol.is_function and not symbol.is_defined:
                result.externals.append(IRExternal(symbol.name, symbol.type))

        logger.debug(
            f"lowered {len(result.functions)} functions, "
            f"{sum(len(f.instructions) for f in result.functions)} instructions"
        )
        return result


def lower_program(program: ProgramNode, symbols: SymbolTable) -> IRProgram:
    return Lowerer(symbols).lower(program)
