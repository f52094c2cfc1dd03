import csv
import io
from typing import Iterable, Iterator, Optional

from azhistory.modules.provenance.domain.models import Resource
from azhistory.shared.core.config import UNKNOWN_TAG_VALUE, Settings, get_settings

REPORT_HEADER = ("Creator", "CreatedDate", "Lifetime", "Resource Name", "Resource ID", "Kind")


def _tag(resource: Resource, key: str) -> str:
    if not resource.tags or key not in resource.tags:
        return UNKNOWN_TAG_VALUE
    return resource.tags[key]


def report_row(resource: Resource, settings: Settings) -> tuple[str, ...]:
    return (
        _tag(resource, settings.CREATOR_TAG),
        _tag(resource, settings.CREATED_DATE_TAG),
        _tag(resource, settings.LIFETIME_TAG),
        resource.name,
        resource.id,
        resource.kind or "",
    )


def render_report(
    resources: Iterable[Resource], settings: Optional[Settings] = None
) -> Iterator[str]:
    """
    Yield the header line, then one fully quoted CSV line per resource.
    """
    settings = settings or get_settings()
    yield ",".join(REPORT_HEADER)
    for resource in resources:
        out = io.StringIO()
        writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="")
        writer.writerow(report_row(resource, settings))
        yield out.getvalue()
