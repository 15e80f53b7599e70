from typing import Mapping, Sequence

from ..cli import user_input
from ..log import FleetprovLogger
from .answers import ResolvedAnswers
from .errors import UsageError
from .manifest import AnswerValue, OptionLeaf


def is_applicable(question: OptionLeaf, answers: Mapping[str, AnswerValue]) -> bool:
    return all(answers.get(k) == v for k, v in question.when.items())


class ConsolePrompter:
    """Asks the remaining configuration questions on the terminal."""

    def __init__(self, logger: FleetprovLogger) -> None:
        self._logger = logger

    def ask(
        self,
        questions: Sequence[OptionLeaf],
        defaults: ResolvedAnswers,
    ) -> ResolvedAnswers:
        answers = dict(defaults)
        for q in questions:
            if not q.name or q.name in answers:
                continue
            # conditions may refer to answers given earlier in this loop
            if not is_applicable(q, answers):
                self._logger.D(f"skipping question {q.name}: conditions {q.when} not met")
                continue

            try:
                answers[q.name] = self._ask_one(q)
            except ValueError as e:
                raise UsageError(
                    f"no answer given for '{q.name}' ({e}); pass it on the command line instead"
                ) from e

        return answers

    def _ask_one(self, q: OptionLeaf) -> AnswerValue:
        assert q.name is not None
        prompt = q.message or q.name

        match q.type:
            case "list" if q.choices:
                values = [v for _, v in q.choices]
                default_idx = values.index(q.default) if q.default in values else None
                idx = user_input.ask_for_choice(
                    self._logger,
                    prompt,
                    [label for label, _ in q.choices],
                    default_idx,
                )
                return values[idx]
            case "password":
                return user_input.ask_for_secret(self._logger, prompt)
            case "number":
                default = q.default if isinstance(q.default, int) else None
                return user_input.ask_for_int(self._logger, prompt, default)
            case "confirm":
                return user_input.ask_for_yesno_confirmation(
                    self._logger,
                    prompt,
                    bool(q.default),
                )
            case _:
                default = None if q.default is None else str(q.default)
                return user_input.ask_for_text(
                    self._logger,
                    prompt,
                    default,
                    allow_empty=True,
                )
