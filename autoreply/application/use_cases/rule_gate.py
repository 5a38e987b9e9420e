from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from autoreply.application.ports.rule_store import RuleStorePort
from autoreply.domain.entities.message import ConversationKey
from autoreply.domain.entities.rule import BotMode

PRIVATE_NUMBER_NOTE = "private_numbers_env"


@dataclass(frozen=True)
class RuleVerdict:
    allowed: bool
    reason: str | None = None

    @staticmethod
    def allow() -> "RuleVerdict":
        return RuleVerdict(allowed=True)

    @staticmethod
    def deny(reason: str) -> "RuleVerdict":
        return RuleVerdict(allowed=False, reason=reason)


class RuleGate:
    """
    Decides whether the assistant may answer a conversation at all.

    Checks run in order and the first match wins: test numbers, private numbers,
    contact rule, conversation rule. Rule lookups fail open: a storage error is
    logged and the turn goes ahead.
    """

    def __init__(
        self,
        rules: RuleStorePort,
        test_numbers: Iterable[str] = (),
        private_numbers: Iterable[str] = (),
    ) -> None:
        self._rules = rules
        self._test_numbers = frozenset(test_numbers)
        self._private_numbers = frozenset(private_numbers)
        self._logger = logging.getLogger(__name__)

    async def evaluate(self, key: ConversationKey) -> RuleVerdict:
        number = key.number

        if number in self._test_numbers:
            return RuleVerdict.deny("test_number")

        if number in self._private_numbers:
            try:
                await self._rules.set_contact_rule(number, BotMode.HUMAN_ONLY, PRIVATE_NUMBER_NOTE)
            except Exception as e:
                self._logger.warning(
                    "Failed to persist private number override",
                    extra={"conversation": str(key), "error": str(e)},
                )
            return RuleVerdict.deny("private_number")

        try:
            contact_rule = await self._rules.get_contact_rule(number)
        except Exception as e:
            self._logger.warning(
                "Contact rule lookup failed; allowing",
                extra={"conversation": str(key), "error": str(e)},
            )
            contact_rule = None
        if contact_rule is not None and contact_rule != BotMode.ON:
            return RuleVerdict.deny(f"contact_{contact_rule.value.lower()}")

        try:
            conversation_rule = await self._rules.get_conversation_rule(key)
        except Exception as e:
            self._logger.warning(
                "Conversation rule lookup failed; allowing",
                extra={"conversation": str(key), "error": str(e)},
            )
            conversation_rule = None
        if conversation_rule is not None and conversation_rule != BotMode.ON:
            return RuleVerdict.deny(f"conversation_{conversation_rule.value.lower()}")

        return RuleVerdict.allow()
