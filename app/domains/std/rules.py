# app/domains/std/rules.py

"""
전문가 규칙(Expert Rule) 평가 모듈입니다.

규칙의 조건식은 아래의 닫힌 표현식 언어로만 작성할 수 있으며, 전용 토크나이저와
재귀 하강 파서로 구문 트리를 만든 뒤 트리를 순회하며 평가합니다.
호스트 언어의 eval/exec, 함수 호출, 속성 접근은 문법에 존재하지 않습니다.

문법 요약:
    리터럴      숫자, '문자열', "문자열", true/false/null, True/False/None, [a, b, ...]
    필드        test_value, data.test_value, context.test_value (접두사는 무시)
    산술        + - * / %  (단항 -)
    비교        == === != !== < <= > >=  in  not in
    논리        && || !  and or not
    괄호        ( ... )

예시:
    interpretation == 'S' && test_value < 14
    test_method === "disk_diffusion" and not quality_control_passed
    interpretation in ['I', 'R'] || data.test_value >= 32
"""

import logging
import math
import re
from functools import lru_cache
from typing import Any, Iterable, List, Mapping, NamedTuple, Optional, Set, Tuple, Union

from app.core.exceptions import InvalidInputError, RuleEvaluationError

from .models import ExpertRule, ExpertRuleType
from .schemas import ConfidenceLevel, ResultValidationSummary, RuleEvaluationResult, SensitivityResult

logger = logging.getLogger(__name__)

MAX_CONDITION_LENGTH = 1000
MAX_NESTING_DEPTH = 40

FIELD_PREFIXES = ("data.", "context.")

KEYWORDS = {
    "and", "or", "not", "in",
    "true", "false", "null",
    "True", "False", "None",
}
_CONSTANTS = {
    "true": True, "True": True,
    "false": False, "False": False,
    "null": None, "None": None,
}

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<NUMBER>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<STRING>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<NAME>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
  | (?P<OP>===|!==|==|!=|<=|>=|&&|\|\||[<>!+\-*/%()\[\],])
  | (?P<SPACE>\s+)
  | (?P<MISMATCH>.)
    """,
    re.VERBOSE,
)

_ACTION_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")

_COMPARISON_OPS = {"==", "===", "!=", "!==", "<", "<=", ">", ">="}

RESISTANCE_RULE_TYPES = frozenset({ExpertRuleType.INTRINSIC_RESISTANCE, ExpertRuleType.ACQUIRED_RESISTANCE})

RULE_CONFIDENCE = {
    ExpertRuleType.INTRINSIC_RESISTANCE: ConfidenceLevel.HIGH,
    ExpertRuleType.ACQUIRED_RESISTANCE: ConfidenceLevel.MEDIUM,
    ExpertRuleType.QUALITY_CONTROL: ConfidenceLevel.HIGH,
    ExpertRuleType.PHENOTYPE_CONFIRMATION: ConfidenceLevel.MEDIUM,
    ExpertRuleType.REPORTING_GUIDANCE: ConfidenceLevel.LOW,
}

RULE_RECOMMENDATIONS = {
    ExpertRuleType.INTRINSIC_RESISTANCE: "Consider intrinsic resistance pattern. Review organism identification.",
    ExpertRuleType.ACQUIRED_RESISTANCE: "Possible acquired resistance. Consider additional testing or alternative therapy.",
    ExpertRuleType.QUALITY_CONTROL: "Review test procedure and quality control measures.",
    ExpertRuleType.PHENOTYPE_CONFIRMATION: "Perform confirmatory testing to verify phenotype.",
    ExpertRuleType.REPORTING_GUIDANCE: "Follow institutional reporting guidelines.",
}
DEFAULT_RECOMMENDATION = "Review result and consider clinical context."


# =============================================================================
# 1. 구문 트리 노드
# =============================================================================
class Literal(NamedTuple):
    value: Any


class FieldRef(NamedTuple):
    name: str


class ListExpr(NamedTuple):
    items: Tuple[Any, ...]


class Unary(NamedTuple):
    op: str
    operand: Any


class Binary(NamedTuple):
    op: str
    left: Any
    right: Any


class Logical(NamedTuple):
    op: str
    left: Any
    right: Any


Node = Union[Literal, FieldRef, ListExpr, Unary, Binary, Logical]


class Token(NamedTuple):
    kind: str
    value: str
    position: int


# =============================================================================
# 2. 토크나이저 / 파서
# =============================================================================
def _unescape(quoted: str) -> str:
    body = quoted[1:-1]
    return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), body)


def tokenize(text: str) -> List[Token]:
    tokens = []
    for match in _TOKEN_PATTERN.finditer(text):
        kind, value = match.lastgroup, match.group()
        if kind == "SPACE":
            continue
        if kind == "MISMATCH":
            raise InvalidInputError(
                f"Unexpected character {value!r} at position {match.start()}",
                details={"condition": text, "position": match.start()},
            )
        if kind == "NAME" and value in KEYWORDS:
            kind = "KEYWORD"
        tokens.append(Token(kind, value, match.start()))
    tokens.append(Token("END", "", len(text)))
    return tokens


class _Parser:
    """연산자 우선순위: || < && < ! < 비교/in < +,- < *,/,% < 단항 -"""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0
        self.depth = 0

    # --- 토큰 유틸리티 ---
    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        token = self.current
        self.index += 1
        return token

    def _at(self, *values: str) -> bool:
        return self.current.kind in ("OP", "KEYWORD") and self.current.value in values

    def _error(self, message: str) -> InvalidInputError:
        token = self.current
        where = "end of condition" if token.kind == "END" else f"{token.value!r} at position {token.position}"
        return InvalidInputError(f"{message} (near {where})", details={"condition": self.text, "position": token.position})

    def _expect(self, value: str) -> None:
        if not self._at(value):
            raise self._error(f"Expected {value!r}")
        self._advance()

    # --- 문법 규칙 ---
    def parse(self) -> Node:
        if self.current.kind == "END":
            raise self._error("Empty condition")
        node = self._or()
        if self.current.kind != "END":
            raise self._error("Unexpected token")
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._at("||", "or"):
            self._advance()
            node = Logical("or", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._at("&&", "and"):
            self._advance()
            node = Logical("and", node, self._not())
        return node

    def _not(self) -> Node:
        if self._at("!") or (self._at("not") and not (self._peek().kind == "KEYWORD" and self._peek().value == "in")):
            self._advance()
            return Unary("not", self._nested(self._not))
        return self._comparison()

    def _comparison(self) -> Node:
        node = self._additive()
        if self._at(*_COMPARISON_OPS):
            op = self._advance().value
            node = Binary(op, node, self._additive())
        elif self._at("in"):
            self._advance()
            node = Binary("in", node, self._additive())
        elif self._at("not") and self._peek().kind == "KEYWORD" and self._peek().value == "in":
            self._advance()
            self._advance()
            node = Binary("not in", node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while self._at("+", "-"):
            op = self._advance().value
            node = Binary(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while self._at("*", "/", "%"):
            op = self._advance().value
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._at("-"):
            self._advance()
            return Unary("-", self._nested(self._unary))
        return self._primary()

    def _nested(self, rule) -> Node:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise self._error("Condition is nested too deeply")
        try:
            return rule()
        finally:
            self.depth -= 1

    def _primary(self) -> Node:
        token = self.current

        if token.kind == "NUMBER":
            self._advance()
            return Literal(float(token.value) if any(c in token.value for c in ".eE") else int(token.value))

        if token.kind == "STRING":
            self._advance()
            return Literal(_unescape(token.value))

        if token.kind == "KEYWORD" and token.value in _CONSTANTS:
            self._advance()
            return Literal(_CONSTANTS[token.value])

        if token.kind == "NAME":
            self._advance()
            name = token.value
            for prefix in FIELD_PREFIXES:
                if name.startswith(prefix):
                    name = name[len(prefix):]
                    break
            if "." in name:
                raise InvalidInputError(
                    f"Attribute access is not supported: {token.value!r}",
                    details={"condition": self.text, "position": token.position},
                )
            return FieldRef(name)

        if self._at("("):
            self._advance()
            node = self._nested(self._or)
            self._expect(")")
            return node

        if self._at("["):
            self._advance()
            items = []
            if not self._at("]"):
                items.append(self._nested(self._or))
                while self._at(","):
                    self._advance()
                    items.append(self._nested(self._or))
            self._expect("]")
            return ListExpr(tuple(items))

        raise self._error("Unexpected token")


@lru_cache(maxsize=512)
def parse_condition(text: str) -> Node:
    """
    조건식을 구문 트리로 변환합니다. 동일한 조건식은 캐시된 트리를 재사용합니다.

    Raises:
        InvalidInputError: 문법 오류, 허용되지 않은 문자/구문, 과도한 길이 또는 중첩
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidInputError("Condition must be a non-empty string")
    if len(text) > MAX_CONDITION_LENGTH:
        raise InvalidInputError(f"Condition exceeds {MAX_CONDITION_LENGTH} characters")
    return _Parser(text).parse()


def referenced_fields(node: Node) -> Set[str]:
    """구문 트리가 참조하는 필드명 집합"""
    if isinstance(node, FieldRef):
        return {node.name}
    if isinstance(node, Literal):
        return set()
    if isinstance(node, ListExpr):
        return set().union(*(referenced_fields(item) for item in node.items))
    if isinstance(node, Unary):
        return referenced_fields(node.operand)
    return referenced_fields(node.left) | referenced_fields(node.right)


def validate_condition(text: str) -> List[str]:
    """조건식의 문법을 검사하고, 참조하는 필드명을 정렬해 반환합니다."""
    return sorted(referenced_fields(parse_condition(text)))


# =============================================================================
# 3. 평가기
# =============================================================================
def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _describe_type(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def _compare(op: str, left: Any, right: Any) -> bool:
    if op in ("==", "==="):
        return left == right
    if op in ("!=", "!=="):
        return left != right
    if not ((_is_number(left) and _is_number(right)) or (isinstance(left, str) and isinstance(right, str))):
        raise RuleEvaluationError(
            f"Cannot compare {_describe_type(left)} {op} {_describe_type(right)}"
        )
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _contains(left: Any, right: Any) -> bool:
    if isinstance(right, (list, tuple)):
        return left in right
    if isinstance(right, str) and isinstance(left, str):
        return left in right
    raise RuleEvaluationError(f"Cannot test membership of {_describe_type(left)} in {_describe_type(right)}")


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    if op == "+" and isinstance(left, str) and isinstance(right, str):
        return left + right
    if not (_is_number(left) and _is_number(right)):
        raise RuleEvaluationError(
            f"Arithmetic '{op}' requires numbers, got {_describe_type(left)} and {_describe_type(right)}"
        )
    if op in ("/", "%") and right == 0:
        raise RuleEvaluationError("Division by zero")
    if op == "+":
        result = left + right
    elif op == "-":
        result = left - right
    elif op == "*":
        result = left * right
    elif op == "/":
        result = left / right
    else:
        result = math.fmod(left, right)
    if isinstance(result, float) and not math.isfinite(result):
        raise RuleEvaluationError("Arithmetic result is not finite")
    return result


def evaluate_node(node: Node, context: Mapping[str, Any]) -> Any:
    """구문 트리를 주어진 컨텍스트로 평가합니다. 실패 시 RuleEvaluationError."""
    if isinstance(node, Literal):
        return node.value

    if isinstance(node, FieldRef):
        if node.name not in context:
            raise RuleEvaluationError(f"Unknown field '{node.name}'", details={"field": node.name})
        return context[node.name]

    if isinstance(node, ListExpr):
        return [evaluate_node(item, context) for item in node.items]

    if isinstance(node, Unary):
        operand = evaluate_node(node.operand, context)
        if node.op == "not":
            return not operand
        if not _is_number(operand):
            raise RuleEvaluationError(f"Unary '-' requires a number, got {_describe_type(operand)}")
        return -operand

    if isinstance(node, Logical):
        left = evaluate_node(node.left, context)
        if node.op == "and":
            return bool(left) and bool(evaluate_node(node.right, context))
        return bool(left) or bool(evaluate_node(node.right, context))

    left = evaluate_node(node.left, context)
    right = evaluate_node(node.right, context)
    if node.op in _COMPARISON_OPS:
        return _compare(node.op, left, right)
    if node.op == "in":
        return _contains(left, right)
    if node.op == "not in":
        return not _contains(left, right)
    return _arithmetic(node.op, left, right)


def check_condition(rule: ExpertRule, context: Mapping[str, Any]) -> bool:
    """
    규칙의 조건식을 평가합니다. 실패 원인을 그대로 예외로 전달합니다.

    Raises:
        InvalidInputError: 조건식 문법 오류
        RuleEvaluationError: 알 수 없는 필드, 타입 불일치, 0으로 나누기, 불리언이 아닌 결과
    """
    result = evaluate_node(parse_condition(rule.condition), context)
    if not isinstance(result, bool):
        raise RuleEvaluationError(
            f"Condition must evaluate to a boolean, got {_describe_type(result)}"
        )
    return result


def evaluate(rule: ExpertRule, context: Mapping[str, Any]) -> bool:
    """
    규칙 하나의 조건을 평가합니다. 평가에 실패한 규칙은 적용되지 않은 것(False)으로 처리하고 로그를 남깁니다.
    """
    try:
        return check_condition(rule, context)
    except (InvalidInputError, RuleEvaluationError) as e:
        logger.warning("전문가 규칙 평가 실패 (rule_id=%s, name=%s): %s", rule.id, rule.name, e.message)
        return False


def render_action(rule: ExpertRule, context: Mapping[str, Any]) -> str:
    """조치 메시지의 {필드명}을 컨텍스트 값으로 치환합니다. 컨텍스트에 없는 필드는 그대로 둡니다."""
    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        return _format_value(context[name]) if name in context else match.group(0)

    return _ACTION_PLACEHOLDER.sub(_substitute, rule.action)


def _format_value(value: Any) -> str:
    # 정수값 실수는 소수점 없이 표시 (25.0 -> "25")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# =============================================================================
# 4. 규칙 선택 및 일괄 평가
# =============================================================================
def _priority_key(rule: ExpertRule):
    return (-(rule.priority or 0), rule.id if rule.id is not None else 0)


def select_applicable_rules(
    rules: Iterable[ExpertRule],
    microorganism_id: Optional[int],
    drug_id: Optional[int],
) -> List[ExpertRule]:
    """
    활성 규칙 중 미생물/항균제 조합에 적용되는 규칙을 우선순위 내림차순으로 반환합니다.
    적용 범위가 비어 있는(None) 규칙은 모든 미생물 또는 모든 항균제에 적용됩니다.
    """
    seen = set()
    selected = []
    for rule in rules:
        if not rule.is_active:
            continue
        if rule.microorganism_id is not None and rule.microorganism_id != microorganism_id:
            continue
        if rule.drug_id is not None and rule.drug_id != drug_id:
            continue
        key = rule.id if rule.id is not None else id(rule)
        if key in seen:
            continue
        seen.add(key)
        selected.append(rule)
    return sorted(selected, key=_priority_key)


def evaluate_rules(candidates: Iterable[ExpertRule], context: Mapping[str, Any]) -> List[RuleEvaluationResult]:
    """
    후보 규칙을 우선순위 내림차순으로 모두 평가합니다.
    한 규칙의 평가 실패는 해당 결과의 `error`에 기록되며 나머지 규칙의 평가를 막지 않습니다.
    """
    results = []
    for rule in sorted(candidates, key=_priority_key):
        applied, message, error = False, None, None
        confidence, recommendation = None, None
        try:
            applied = check_condition(rule, context)
        except (InvalidInputError, RuleEvaluationError) as e:
            logger.warning("전문가 규칙 평가 실패 (rule_id=%s, name=%s): %s", rule.id, rule.name, e.message)
            error = e.message
        if applied:
            rule_type = ExpertRuleType(rule.rule_type)
            message = render_action(rule, context)
            confidence = RULE_CONFIDENCE.get(rule_type)
            recommendation = RULE_RECOMMENDATIONS.get(rule_type, DEFAULT_RECOMMENDATION)
        results.append(
            RuleEvaluationResult(
                rule_id=rule.id,
                rule_name=rule.name,
                rule_type=rule.rule_type,
                priority=rule.priority or 0,
                applied=applied,
                message=message,
                error=error,
                confidence=confidence,
                recommendation=recommendation,
            )
        )
    return results


def summarize_evaluations(
    evaluations: Iterable[RuleEvaluationResult], interpretation: str
) -> ResultValidationSummary:
    """
    적용된 규칙을 유형별로 분류해 판정 결과를 검증합니다.

    - 자연/획득 내성 규칙: 판정이 S이면 오류, 그 외에는 경고
    - 정도 관리 규칙: 경고
    - 표현형 확인, 보고 지침 규칙: 권고

    오류가 없으면 유효합니다. 내성 규칙이 S 판정에 적용되면 R을 제안하지만,
    제안은 요약에만 담기며 판정을 바꾸는 것은 검토자의 몫입니다.
    """
    summary = ResultValidationSummary(
        interpretation=interpretation, is_valid=True, suggested_interpretation=interpretation
    )
    is_susceptible = interpretation == SensitivityResult.SUSCEPTIBLE.value
    for evaluation in evaluations:
        if not evaluation.applied:
            continue
        summary.triggered_rules.append(evaluation)
        text = f"{evaluation.rule_name}: {evaluation.message}" if evaluation.message else evaluation.rule_name
        rule_type = ExpertRuleType(evaluation.rule_type)
        if rule_type in RESISTANCE_RULE_TYPES:
            if is_susceptible:
                summary.errors.append(text)
                summary.suggested_interpretation = SensitivityResult.RESISTANT.value
            else:
                summary.warnings.append(text)
        elif rule_type == ExpertRuleType.QUALITY_CONTROL:
            summary.warnings.append(text)
        else:
            summary.recommendations.append(text)
    summary.is_valid = not summary.errors
    return summary
