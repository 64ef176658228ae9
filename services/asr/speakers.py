"""Speaker role resolver — map provider speaker markers to agent/customer."""

from config.schemas import SpeakerRole


_LETTER_CODES = {"A": SpeakerRole.AGENT, "B": SpeakerRole.CUSTOMER}
_NUMERIC_CODES = {"1": SpeakerRole.AGENT, "2": SpeakerRole.CUSTOMER}
_CHANNEL_INDEX = {0: SpeakerRole.AGENT, 1: SpeakerRole.CUSTOMER}
_ALTERNATION = (SpeakerRole.AGENT, SpeakerRole.CUSTOMER)


class SpeakerRoleResolver:
    """Resolve speaker markers for one conversation.

    Known marker families map by fixed convention. Unknown labels get roles in order of
    first appearance (agent, customer, agent, ...); missing markers alternate by segment
    position. Create a fresh resolver per conversation.
    """

    def __init__(self):
        self._unknown: dict[str, SpeakerRole] = {}

    def resolve(self, marker, position: int = 0) -> SpeakerRole:
        if isinstance(marker, SpeakerRole):
            return marker
        # bool is an int subclass; never treat it as a channel index
        if isinstance(marker, int) and not isinstance(marker, bool) and marker in _CHANNEL_INDEX:
            return _CHANNEL_INDEX[marker]
        if isinstance(marker, str):
            label = marker.strip()
            lowered = label.lower()
            if lowered in ("agent", "customer"):
                return SpeakerRole(lowered)
            if label.upper() in _LETTER_CODES and len(label) == 1 and label.isalpha():
                return _LETTER_CODES[label.upper()]
            if label in _NUMERIC_CODES:
                return _NUMERIC_CODES[label]
        if marker is None or (isinstance(marker, str) and not marker.strip()):
            return _ALTERNATION[position % 2]

        key = str(marker)
        if key not in self._unknown:
            self._unknown[key] = _ALTERNATION[len(self._unknown) % 2]
        return self._unknown[key]
