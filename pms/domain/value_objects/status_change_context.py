"""Value Object StatusChangeContext - quién pide una transición y con qué banderas."""

from dataclasses import dataclass

from pms.domain.value_objects.actor import Actor, ActorSource


@dataclass(frozen=True)
class StatusChangeContext:
    """
    Contexto de una transición de estado.

    Solo acepta los campos declarados; cualquier otro argumento falla al construirlo.
    """

    source: ActorSource = ActorSource.SYSTEM
    user_id: str | None = None
    user_name: str | None = None
    channel: str | None = None
    reason: str = ""
    automatic: bool = False

    # Banderas de política
    bypass_amendment_check: bool = False
    early_check_in: bool = False
    bypass_cancellation_policy: bool = False
    manual_no_show: bool = False
    force_modified: bool = False

    # Banderas de efectos secundarios
    skip_notifications: bool = False
    enable_automation: bool = True
    process_refund: bool = True
    apply_no_show_penalty: bool = False

    @property
    def actor(self) -> Actor:
        return Actor(source=self.source, user_id=self.user_id, user_name=self.user_name, channel=self.channel)

    @classmethod
    def system(cls, reason: str, **flags: bool) -> "StatusChangeContext":
        """Contexto para acciones automáticas del sistema."""
        return cls(source=ActorSource.SYSTEM, reason=reason, automatic=True, **flags)
