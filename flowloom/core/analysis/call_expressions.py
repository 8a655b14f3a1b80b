"""Parsing of raw call expressions recorded by the scanner.

The scanner stores calls as source text (``"orderService.submit(order)"``).
These helpers split them into receiver, method name and literal
arguments without trying to be a real expression parser.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

_STRING_LITERAL = re.compile(r'"((?:[^"\\]|\\.)*)"')
_GENERIC_SUFFIX = re.compile(r"<.*>$")

# Producer-side messaging clients whose calls become MQ edges
MQ_PRODUCER_TYPES = frozenset({
    "KafkaTemplate",
    "RabbitTemplate",
    "RocketMQTemplate",
    "JmsTemplate",
    "AmqpTemplate",
    "StreamBridge",
})


@dataclass(frozen=True)
class CallExpression:
    receiver: Optional[str]
    method: str
    arguments: str = ""

    @property
    def string_literals(self) -> List[str]:
        return _STRING_LITERAL.findall(self.arguments)

    @property
    def first_literal(self) -> Optional[str]:
        literals = self.string_literals
        return literals[0] if literals else None


def parse_call(expression: str) -> Optional[CallExpression]:
    """Split ``receiver.method(args)`` into its parts.

    Chained calls keep only the first hop (``repo.findById(id).get()`` ->
    ``repo.findById``). ``this.``/``super.`` prefixes are dropped.
    """
    expr = (expression or "").strip()
    if not expr:
        return None

    paren = expr.find("(")
    if paren == -1:
        head, args = expr, ""
    else:
        head = expr[:paren]
        args = _balanced_arguments(expr, paren)

    for prefix in ("this.", "super."):
        if head.startswith(prefix):
            head = head[len(prefix):]

    head = head.strip()
    if not head:
        return None

    receiver, _, method = head.rpartition(".")
    if not method:
        return None
    return CallExpression(receiver=receiver or None, method=method, arguments=args)


def _balanced_arguments(expr: str, open_index: int) -> str:
    depth = 0
    in_string = False
    for i in range(open_index, len(expr)):
        ch = expr[i]
        if ch == '"' and expr[i - 1] != "\\":
            in_string = not in_string
        elif in_string:
            continue
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return expr[open_index + 1:i]
    return expr[open_index + 1:]


def base_type_name(type_name: str) -> str:
    """Strip generics: ``KafkaTemplate<String, Event>`` -> ``KafkaTemplate``."""
    return _GENERIC_SUFFIX.sub("", (type_name or "").strip())


def is_mq_producer_type(type_name: str) -> bool:
    return base_type_name(type_name).rsplit(".", 1)[-1] in MQ_PRODUCER_TYPES
