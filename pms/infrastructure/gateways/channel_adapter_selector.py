from typing import Dict

from pms.application.interfaces.channel_adapter import ChannelAdapter


class ChannelAdapterSelector:
    def __init__(
        self,
        default_adapter: ChannelAdapter,
        mapping: Dict[str, ChannelAdapter] | None = None,
    ):
        self._default = default_adapter
        self._mapping = mapping or {}

    def register(self, channel: str, adapter: ChannelAdapter) -> None:
        self._mapping[channel.lower()] = adapter

    def for_channel(self, channel: str) -> ChannelAdapter:
        # Canal sin endpoint configurado: se usa el adapter por defecto
        return self._mapping.get(channel.lower(), self._default)

    def channels(self) -> list[str]:
        return sorted(self._mapping)
