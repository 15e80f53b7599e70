from dataclasses import dataclass, field
import re
from typing import Any, Final, Iterable, Mapping, Sequence

from .manifest import (
    ADVANCED_GROUP_NAME,
    AnswerValue,
    DeviceTypeManifest,
    find_group,
    get_group_defaults,
)

CONFIG_FLAG_PREFIX: Final = "config-"

# names of well-known questions
Q_NETWORK: Final = "network"
Q_WIFI_SSID: Final = "wifiSsid"
Q_WIFI_KEY: Final = "wifiKey"
Q_APP_UPDATE_POLL_INTERVAL: Final = "appUpdatePollInterval"

NETWORK_WIFI: Final = "wifi"
NETWORK_ETHERNET: Final = "ethernet"

# fixed fields derived by the provisioning run rather than asked
A_DEVICE_TYPE: Final = "deviceType"
A_VERSION: Final = "version"

SOURCE_FLAGS: Final = "flags"
SOURCE_CONFIG_FILE: Final = "config-file"
SOURCE_ADVANCED_DEFAULTS: Final = "advanced-defaults"

ResolvedAnswers = dict[str, AnswerValue]


@dataclass(frozen=True)
class AnswerSource:
    name: str
    values: Mapping[str, Any] = field(default_factory=dict)

    def get(self, question: str) -> Any:
        return self.values.get(question)


def _camelify(key: str) -> str:
    return re.sub(r"-[a-z]", lambda m: m.group(0)[1:].upper(), key)


def camelify_config_options(options: Mapping[str, Any]) -> dict[str, Any]:
    """Renames ``config-xxx-yyy`` keys to ``xxxYyy``, keeping other keys as is.

    >>> camelify_config_options({"app": "foo", "config-wifi-key": "k"})
    {'app': 'foo', 'wifiKey': 'k'}
    """

    result: dict[str, Any] = {}
    for k, v in options.items():
        if k.startswith(CONFIG_FLAG_PREFIX):
            k = _camelify(k[len(CONFIG_FLAG_PREFIX) :])
        result[k] = v
    return result


def build_answer_sources(
    manifest: DeviceTypeManifest,
    flags: Mapping[str, Any],
    config_file: Mapping[str, Any] | None,
    advanced: bool,
) -> list[AnswerSource]:
    """Returns the answer sources in precedence order, highest first."""

    sources = [AnswerSource(SOURCE_FLAGS, camelify_config_options(flags))]

    if config_file:
        sources.append(AnswerSource(SOURCE_CONFIG_FILE, config_file))

    if not advanced:
        # advanced questions are silently answered with their defaults
        if group := find_group(manifest, ADVANCED_GROUP_NAME):
            if defaults := get_group_defaults(group):
                sources.append(AnswerSource(SOURCE_ADVANCED_DEFAULTS, defaults))

    return sources


def resolve_answers(
    question_names: Iterable[str],
    sources: Sequence[AnswerSource],
) -> ResolvedAnswers:
    """Picks each question's answer from the first source that has one.

    Questions without an answer in any source are left out, for the
    interactive prompter to ask."""

    names = list(question_names)
    answers: ResolvedAnswers = {}
    for q in names:
        for src in sources:
            v = src.get(q)
            if v is not None:
                answers[q] = v
                break

    # only ever emit keys the manifest knows about
    if (
        Q_NETWORK in names
        and not answers.get(Q_NETWORK)
        and (answers.get(Q_WIFI_SSID) or answers.get(Q_WIFI_KEY))
    ):
        answers[Q_NETWORK] = NETWORK_WIFI

    return answers
