from urllib.parse import parse_qs, urlsplit

import pytest

from tablekit.services.tables import (
    Action,
    ActionGroup,
    BulkAction,
    BulkActionGroup,
    BulkDeleteAction,
    DeleteAction,
    ReplicateAction,
    Table,
    TableConfigurationError,
    TextColumn,
)
from tablekit.services.tables.actions import evaluate
from tests.models import User


def test_label_generated_from_name():
    assert Action("mark_paid").resolved_label == "Mark Paid"
    assert Action("mark_paid", label="Pay").resolved_label == "Pay"


def test_to_dict_only_emits_identity_fields_by_default():
    assert Action("archive").to_dict() == {"name": "archive", "label": "Archive", "color": "primary"}


def test_to_dict_emits_non_default_fields():
    data = (
        Action("archive", icon="archive")
        .danger()
        .requires_confirmation(confirm_label="Yes", cancel_label="No")
        .action(lambda record: None)
        .to_dict()
    )

    assert data == {
        "name": "archive",
        "label": "Archive",
        "color": "danger",
        "icon": "archive",
        "requiresConfirmation": True,
        "confirmationTitle": "Confirm Action",
        "confirmationMessage": "Are you sure you want to perform this action?",
        "confirmationButton": "Yes",
        "cancelButton": "No",
        "hasAction": True,
    }


def test_url_actions_serialize_navigation_flags():
    data = Action("open").with_url(lambda record: "/x", new_tab=True).to_dict()

    assert data["hasUrl"] is True
    assert data["openUrlInNewTab"] is True
    assert "hasAction" not in data


@pytest.mark.parametrize(
    "shortcut, color",
    [
        ("danger", "danger"),
        ("success", "success"),
        ("warning", "warning"),
        ("info", "info"),
        ("gray", "gray"),
        ("secondary", "secondary"),
    ],
)
def test_color_shortcuts(shortcut, color):
    assert getattr(Action("go"), shortcut)().color == color


def test_predicates_accept_booleans_and_callables():
    action = Action(
        "archive",
        visible=lambda record: record is not None,
        disabled=lambda record: record == "locked",
        authorize=lambda: True,
    )

    assert action.is_visible("row")
    assert not action.is_visible(None)
    assert action.is_disabled("locked")
    assert action.is_authorized(None)
    assert not Action("archive", hidden=True).is_visible("row")
    assert Action("archive").is_authorized(None)


def test_evaluate_trims_arguments_to_signature():
    assert evaluate(lambda: "none", 1, 2) == "none"
    assert evaluate(lambda a: a, 1, 2) == 1
    assert evaluate(lambda a, b: (a, b), 1, 2) == (1, 2)
    assert evaluate(lambda *args: args, 1, 2) == (1, 2)
    assert evaluate("plain", 1) == "plain"


def test_bulk_action_without_authorize_raises_for_every_record():
    action = BulkAction("purge")

    for record in (None, object(), [1, 2]):
        with pytest.raises(TableConfigurationError, match="must have an authorize"):
            action.is_authorized(record)


def test_bulk_action_authorize_is_evaluated():
    assert BulkAction("purge", authorize=True).is_authorized(None)
    assert not BulkAction("purge", authorize=lambda record: False).is_authorized(None)


def test_table_rejects_bulk_action_without_authorize():
    with pytest.raises(TableConfigurationError):
        Table(query=User, columns=[TextColumn("name")], bulk_actions=[BulkAction("purge")])


def test_table_rejects_duplicate_operation_names():
    with pytest.raises(TableConfigurationError, match="Duplicate operation"):
        Table(query=User, actions=[Action("archive"), ActionGroup("more", actions=[Action("archive")])])


def test_unbound_action_cannot_issue_callback():
    with pytest.raises(TableConfigurationError, match="not bound"):
        Action("archive").callback(None)


def test_row_dict_for_disabled_action_has_no_callback():
    action = Action("archive", disabled=True).bind("users")

    assert action.to_row_dict(None) == {"disabled": True}


def test_row_dict_callback_is_bound_to_record(db_session, users):
    action = Action("archive", handler=lambda record: None).bind("users")

    row = action.to_row_dict(users["bob"])
    query = parse_qs(urlsplit(row["callback"]).query)

    assert query["name"] == ["archive"]
    assert query["record"] == [str(users["bob"].id)]
    assert "signature" in query
    assert "expires" in query


def test_bulk_action_bound_dict():
    action = BulkAction("purge", authorize=True, handler=lambda records: None).bind("users")
    disabled = BulkAction("purge", authorize=True, disabled=True).bind("users")

    data = action.to_bound_dict()
    assert "callback" in data
    assert "record" not in parse_qs(urlsplit(data["callback"]).query)
    assert disabled.to_bound_dict()["disabled"] is True
    assert "callback" not in disabled.to_bound_dict()
    assert action.keep_selection().to_dict()["deselectRecordsAfterCompletion"] is False


def test_group_visibility_is_or_of_members():
    group = ActionGroup(
        "more",
        actions=[Action("a", visible=False), Action("b", hidden=lambda record: record is None)],
    )

    assert not group.is_visible(None)
    assert group.is_visible("row")
    assert not ActionGroup("more", actions=[Action("a")], hidden=True).is_visible("row")


def test_group_to_dict():
    data = ActionGroup("more", actions=[Action("view")], tooltip="More").to_dict()

    assert data == {
        "name": "more",
        "label": "More",
        "color": "gray",
        "tooltip": "More",
        "actions": [{"name": "view", "label": "View", "color": "primary"}],
        "type": "group",
    }


def test_group_member_types_are_checked():
    with pytest.raises(TableConfigurationError):
        ActionGroup("more", actions=[BulkAction("purge", authorize=True)])
    with pytest.raises(TableConfigurationError):
        BulkActionGroup("more", actions=[Action("view")])


def test_prebuilt_actions():
    delete = DeleteAction()
    replicate = ReplicateAction()
    bulk_delete = BulkDeleteAction(authorize=True)

    assert delete.name == "delete"
    assert delete.color == "danger"
    assert delete.to_dict()["confirmationTitle"] == "Confirm Deletion"
    assert replicate.resolved_label == "Duplicate"
    assert bulk_delete.name == "bulk_delete"
    with pytest.raises(TableConfigurationError):
        BulkDeleteAction().is_authorized(None)


def test_delete_and_replicate_bodies(db_session, users):
    bob = users["bob"]

    clone = ReplicateAction().execute(bob)
    db_session.flush()
    assert clone.id != bob.id
    assert clone.name == "Bob"
    assert clone.email == bob.email

    DeleteAction().execute(clone)
    db_session.flush()
    assert db_session.get(User, clone.id) is None

    deleted = BulkDeleteAction(authorize=True).execute([users["alice"], users["charlie"]])
    db_session.flush()
    assert deleted == 2
    assert db_session.query(User).count() == 1
