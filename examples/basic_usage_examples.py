import sys

## We'll try to use the local fluentsp library, not the system-installed
sys.path.insert(0, "..")
sys.path.insert(0, ".")

import fluentsp
from fluentsp import CamlQuery, FieldType, FluentOperation
from fluentsp.lib.error import NotFoundError

## CONFIGURATION.  Edit here, or set FLUENTSP_URL and FLUENTSP_PASSWORD
## in the environment and use fluentsp.get_operation() instead.
site_url = "https://contoso.sharepoint.com/sites/team"
token = "eyJ0eXAi..."
list_name = "Test list from fluentsp examples"


def run_examples():
    """
    Run through all the examples, one by one
    """
    ## Creating the client does not talk to the server, so the
    ## credentials aren't validated yet.
    with fluentsp.SharePointClient(url=site_url, password=token) as client:
        op = FluentOperation(client)

        ## This cleans up from previous runs, if needed.  The delete is
        ## only queued; execute() sends it.
        try:
            op.delete_list(list_name).execute()
        except NotFoundError:
            pass

        create_list_demo(op)
        column_demo(op)
        item_demo(op)

        ## Clean up
        op.delete_list(list_name).execute()


def create_list_demo(op):
    ## create_list needs a web to put the list in
    op.select_web().create_list(list_name, description="Created by fluentsp").execute()
    print(f"created {op.current_list!r}, {op.current_list['ItemCount']} items")


def column_demo(op):
    ## Column changes are sent right away, no execute() needed
    op.select_list(list_name)
    op.add_column("Priority", FieldType.NUMBER, display_name="Priority")
    op.add_column("Code", FieldType.TEXT, unique_values=True)
    op.change_column("Priority", required=True)
    op.delete_column("Code")


def item_demo(op):
    ## Items are created in one batch
    (
        op.select_list(list_name)
        .add_item(Title="First", Priority=1)
        .add_item(Title="Second", Priority=2)
        .execute()
    )

    ## get_items sends anything still queued together with the query
    query = CamlQuery(
        "<View><Query><Where><Eq><FieldRef Name='Priority'/>"
        "<Value Type='Number'>2</Value></Eq></Where></Query></View>"
    )
    for item in op.get_items(query):
        print(item["Title"])

    ## Delete everything that is left
    op.select_list(list_name).delete_items().execute()


if __name__ == "__main__":
    run_examples()
