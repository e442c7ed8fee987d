"""
User-facing error messages.

Fixed title/message/suggestion per error kind. Raw error text never
reaches the user; it stays in the logs.
"""

from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict

from noteflow.errors import ErrorClassification, ErrorKind, classify

DEFAULT_LOCALE = "en"


class UserMessage(BaseModel):
    """What the UI/CLI shows for a failure."""

    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    suggestion: str


_EN = {
    ErrorKind.AUTHENTICATION: UserMessage(
        title="Invalid API key",
        message="Your API key could not be verified.",
        suggestion="Check the Anthropic API key in your settings.",
    ),
    ErrorKind.QUOTA_EXCEEDED: UserMessage(
        title="API quota exhausted",
        message="Your API usage allowance has run out.",
        suggestion="Top up your credit in the Anthropic console or wait for the quota to reset.",
    ),
    ErrorKind.RATE_LIMIT: UserMessage(
        title="Too many requests",
        message="The API rate limit was hit. Retrying automatically.",
        suggestion="Wait a moment; this will sort itself out.",
    ),
    ErrorKind.NETWORK: UserMessage(
        title="Network connection failed",
        message="Could not reach the API server.",
        suggestion="Check your network connection.",
    ),
    ErrorKind.TIMEOUT: UserMessage(
        title="Request timed out",
        message="The API took too long to answer. Retrying.",
        suggestion="Wait a moment; the request will be retried automatically.",
    ),
    ErrorKind.SERVER: UserMessage(
        title="Server error",
        message="The API server is temporarily unavailable. Retrying.",
        suggestion="Wait a moment; the request will be retried automatically.",
    ),
    ErrorKind.CLIENT: UserMessage(
        title="Bad request",
        message="The request sent to the API was malformed.",
        suggestion="Check that your input is correct.",
    ),
    ErrorKind.PARSING: UserMessage(
        title="Could not read the response",
        message="The data returned by the API could not be parsed.",
        suggestion="Try again later. Contact support if it keeps happening.",
    ),
    ErrorKind.UNKNOWN: UserMessage(
        title="Unknown error",
        message="Something went wrong.",
        suggestion="Try again later. Contact support if it keeps happening.",
    ),
}

_ZH = {
    ErrorKind.AUTHENTICATION: UserMessage(
        title="API 密钥无效",
        message="无法验证您的 API 密钥，请检查配置是否正确",
        suggestion="请在设置中检查您的 Anthropic API 密钥",
    ),
    ErrorKind.QUOTA_EXCEEDED: UserMessage(
        title="API 配额已用完",
        message="您的 API 使用额度已耗尽",
        suggestion="请前往 Anthropic 控制台充值或等待配额重置",
    ),
    ErrorKind.RATE_LIMIT: UserMessage(
        title="请求过于频繁",
        message="API 请求频率超限，系统正在自动重试",
        suggestion="请稍等片刻，系统会自动处理",
    ),
    ErrorKind.NETWORK: UserMessage(
        title="网络连接失败",
        message="无法连接到 API 服务器",
        suggestion="请检查您的网络连接",
    ),
    ErrorKind.TIMEOUT: UserMessage(
        title="请求超时",
        message="API 请求时间过长，正在重试",
        suggestion="请稍等片刻，系统会自动重试",
    ),
    ErrorKind.SERVER: UserMessage(
        title="服务器错误",
        message="API 服务器暂时不可用，正在重试",
        suggestion="请稍等片刻，系统会自动重试",
    ),
    ErrorKind.CLIENT: UserMessage(
        title="请求错误",
        message="发送的请求格式有误",
        suggestion="请检查输入内容是否正确",
    ),
    ErrorKind.PARSING: UserMessage(
        title="响应解析失败",
        message="无法解析 API 返回的数据",
        suggestion="请稍后重试，如问题持续请联系支持",
    ),
    ErrorKind.UNKNOWN: UserMessage(
        title="未知错误",
        message="发生了未知错误",
        suggestion="请稍后重试，如问题持续请联系支持",
    ),
}

USER_MESSAGES: Mapping[str, Mapping[ErrorKind, UserMessage]] = MappingProxyType({
    "en": MappingProxyType(_EN),
    "zh": MappingProxyType(_ZH),
})

SUGGESTION_LABELS = MappingProxyType({"en": "Suggestion", "zh": "建议"})


def to_user_message(error: ErrorClassification | Any, locale: str = DEFAULT_LOCALE) -> UserMessage:
    """
    Look up the user message for a classification.

    Raw errors are classified first. Unknown locales fall back to English,
    unknown kinds to the generic entry.
    """
    classification = error if isinstance(error, ErrorClassification) else classify(error)
    table = USER_MESSAGES.get(locale, USER_MESSAGES[DEFAULT_LOCALE])
    return table.get(classification.kind, table[ErrorKind.UNKNOWN])


def format_user_message(error: ErrorClassification | Any, locale: str = DEFAULT_LOCALE) -> str:
    """Render a user message as 'title: message' plus a suggestion line."""
    msg = to_user_message(error, locale)
    label = SUGGESTION_LABELS.get(locale, SUGGESTION_LABELS[DEFAULT_LOCALE])
    return f"{msg.title}: {msg.message}\n{label}: {msg.suggestion}"
