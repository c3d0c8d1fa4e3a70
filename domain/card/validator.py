"""
卡号校验与脱敏 - PCI DSS 场景下的 PAN 处理工具

所有函数都是纯函数且不会抛出异常：输入可能来自攻击者，非法输入一律
返回哨兵值（UNKNOWN / None / 原样返回 / False）。

Example:
    >>> mask("4111 1111 1111 1111")
    '411111******1111'
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Optional


class CardBrand(str, Enum):
    """卡组织枚举"""
    VISA = "VISA"
    MASTERCARD = "MASTERCARD"
    AMEX = "AMEX"
    DISCOVER = "DISCOVER"
    DINERS = "DINERS"
    JCB = "JCB"
    UNKNOWN = "UNKNOWN"


MIN_PAN_LENGTH = 13
MAX_PAN_LENGTH = 19
BIN_LENGTH = 6
LAST_FOUR_LENGTH = 4
MASK_CHAR = "*"

_NON_DIGIT = re.compile(r"[^0-9]")


def clean(pan: Any) -> str:
    """去除所有非数字字符；非字符串输入返回空串"""
    if not isinstance(pan, str):
        return ""
    return _NON_DIGIT.sub("", pan)


def is_valid_length(pan: Any) -> bool:
    """清洗后长度是否在 [13, 19]"""
    return MIN_PAN_LENGTH <= len(clean(pan)) <= MAX_PAN_LENGTH


def luhn_check(pan: Any) -> bool:
    """
    Luhn 校验

    从最右一位开始，每隔一位乘 2，结果大于 9 则减 9，求和后模 10 为 0 即合法。
    """
    digits = clean(pan)
    if not digits:
        return False

    total = 0
    for index, ch in enumerate(reversed(digits)):
        n = ord(ch) - 48
        if index % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


def is_valid(pan: Any) -> bool:
    return is_valid_length(pan) and luhn_check(pan)


def _prefix(digits: str, size: int) -> Optional[int]:
    if len(digits) < size:
        return None
    return int(digits[:size])


def _in_range(value: Optional[int], low: int, high: int) -> bool:
    return value is not None and low <= value <= high


def detect_brand(pan: Any) -> CardBrand:
    """
    按号段识别卡组织

    少于 4 位数字时无法可靠识别，返回 UNKNOWN。
    Discover 的 622126-622925 区间按 6 位前缀比较。
    """
    digits = clean(pan)
    if len(digits) < 4:
        return CardBrand.UNKNOWN

    first_one = _prefix(digits, 1)
    first_two = _prefix(digits, 2)
    first_three = _prefix(digits, 3)
    first_four = _prefix(digits, 4)
    first_six = _prefix(digits, 6)

    if first_one == 4:
        return CardBrand.VISA

    if _in_range(first_two, 51, 55) or _in_range(first_four, 2221, 2720):
        return CardBrand.MASTERCARD

    if first_two in (34, 37):
        return CardBrand.AMEX

    if (
        first_four == 6011
        or first_two == 65
        or _in_range(first_three, 644, 649)
        or _in_range(first_six, 622126, 622925)
    ):
        return CardBrand.DISCOVER

    if _in_range(first_three, 300, 305) or first_two in (36, 38):
        return CardBrand.DINERS

    if _in_range(first_four, 3528, 3589):
        return CardBrand.JCB

    return CardBrand.UNKNOWN


def mask(pan: Any) -> Any:
    """
    脱敏：BIN(前 6 位) + 中间星号 + 后 4 位

    清洗后不足 10 位时原样返回输入。
    """
    digits = clean(pan)
    if len(digits) < BIN_LENGTH + LAST_FOUR_LENGTH:
        return pan
    middle = len(digits) - BIN_LENGTH - LAST_FOUR_LENGTH
    return digits[:BIN_LENGTH] + MASK_CHAR * middle + digits[-LAST_FOUR_LENGTH:]


def extract_bin(pan: Any) -> Optional[str]:
    """前 6 位 BIN，不足返回 None"""
    digits = clean(pan)
    return digits[:BIN_LENGTH] if len(digits) >= BIN_LENGTH else None


def extract_last_four(pan: Any) -> Optional[str]:
    digits = clean(pan)
    return digits[-LAST_FOUR_LENGTH:] if len(digits) >= LAST_FOUR_LENGTH else None


def card_fingerprint(pan: Any) -> str:
    """用于日志/风控关联的短标识：BIN + '****' + 后四位，不足 10 位返回 UNKNOWN"""
    digits = clean(pan)
    if len(digits) < BIN_LENGTH + LAST_FOUR_LENGTH:
        return CardBrand.UNKNOWN.value
    return f"{digits[:BIN_LENGTH]}****{digits[-LAST_FOUR_LENGTH:]}"

