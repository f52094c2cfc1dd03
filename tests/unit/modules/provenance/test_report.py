from azhistory.modules.provenance.domain.models import Resource
from azhistory.modules.provenance.domain.report import render_report


def test_report_header_and_quoted_rows(settings):
    resources = [
        Resource(
            id="/subscriptions/sub-123/resourceGroups/rg/providers/Microsoft.Web/sites/shop",
            type="Microsoft.Web/sites",
            name="shop",
            kind="app,linux",
            tags={"azh-creator": "a@b.com", "azh-createddate": "2024-05-02", "azh-lifetime": "30d"},
        ),
        Resource(id="/r/untagged", type="Microsoft.Storage/storageAccounts", name="untagged"),
    ]

    lines = list(render_report(resources, settings))

    assert lines == [
        "Creator,CreatedDate,Lifetime,Resource Name,Resource ID,Kind",
        '"a@b.com","2024-05-02","30d","shop",'
        '"/subscriptions/sub-123/resourceGroups/rg/providers/Microsoft.Web/sites/shop","app,linux"',
        '"<unknown>","<unknown>","<unknown>","untagged","/r/untagged",""',
    ]


def test_report_escapes_embedded_quotes(settings):
    resource = Resource(id="/r/1", type="t", name='say "hi"')

    line = list(render_report([resource], settings))[1]

    assert '"say ""hi"""' in line
