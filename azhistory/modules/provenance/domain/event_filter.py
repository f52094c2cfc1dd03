from azhistory.modules.provenance.domain.models import AuditEvent


def is_human_caller(event: AuditEvent) -> bool:
    """
    True when the event's caller looks like an interactively signed-in user.

    Users authenticate with email-style UPNs; service principals and managed
    identities show up as GUIDs or app names. Not very scientific (a
    mail-enabled service account passes, a guest without '@' does not) but
    works in practice.
    """
    return event.caller is not None and "@" in event.caller
