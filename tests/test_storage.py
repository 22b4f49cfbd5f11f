"""Result store and session state."""

import asyncio

import pytest

from conftest import make_doc
from exceptions import NotFound, ValidationError
from models import CellStatus, ExtractionResult
from storage import ResultStore
from templates import TEMPLATES, get_template


def test_set_is_last_write_wins():
    store = ResultStore()
    store.set("d", "c", ExtractionResult.pending())
    store.set("d", "c", ExtractionResult(value="Yes"))
    assert store.get("d", "c").value == "Yes"
    assert store.count() == 1


def test_patch_is_noop_for_empty_cell():
    store = ResultStore()
    assert store.patch("d", "c", is_reviewed=True) is None
    assert store.get("d", "c") is None


def test_manual_edit_preserves_first_original_value(two_docs_one_column):
    project, a, b, col = two_docs_one_column
    project.results.set(a.id, col.id, ExtractionResult(value="No"))

    first = project.edit_result(a.id, col.id, "Yes")
    assert first.value == "Yes"
    assert first.original_value == "No"
    assert first.is_manually_edited is True
    assert first.edited_at is not None

    second = project.edit_result(a.id, col.id, "Not Found")
    assert second.value == "Not Found"
    assert second.original_value == "No"


def test_edit_requires_existing_result(two_docs_one_column):
    project, a, b, col = two_docs_one_column
    with pytest.raises(NotFound):
        project.edit_result(a.id, col.id, "Yes")


def test_manual_edit_of_failed_cell_makes_it_ready(two_docs_one_column):
    project, a, b, col = two_docs_one_column
    project.results.set(a.id, col.id, ExtractionResult.failed("timeout"))
    edited = project.edit_result(a.id, col.id, "Yes")
    assert edited.status == CellStatus.READY


def test_toggle_reviewed(two_docs_one_column):
    project, a, b, col = two_docs_one_column
    project.results.set(a.id, col.id, ExtractionResult(value="Yes"))
    on = project.toggle_reviewed(a.id, col.id)
    assert on.is_reviewed is True and on.reviewed_at is not None
    off = project.toggle_reviewed(a.id, col.id)
    assert off.is_reviewed is False and off.reviewed_at is None
    assert off.value == "Yes"


def test_remove_column_cascades_and_renumbers(project):
    docs = [make_doc("a.txt", "A"), make_doc("b.txt", "B")]
    project.add_documents(docs)
    cols = [project.add_column(f"Col {i}", f"Prompt {i}") for i in range(4)]
    for d in docs:
        for c in cols:
            project.results.set(d.id, c.id, ExtractionResult(value="v"))
    project.set_selected_cell((docs[0].id, cols[1].id))

    project.remove_column(cols[1].id)

    assert [c.order for c in project.columns] == [0, 1, 2]
    assert [c.name for c in project.columns] == ["Col 0", "Col 2", "Col 3"]
    for d in docs:
        assert cols[1].id not in project.results.row(d.id)
        assert len(project.results.row(d.id)) == 3
    assert project.selected_cell is None


def test_remove_document_cascades_and_clears_selection(project):
    a, b = make_doc("a.txt", "A"), make_doc("b.txt", "B")
    project.add_documents([a, b])
    col = project.add_column("Term", "What is the term?")
    project.results.set(a.id, col.id, ExtractionResult(value="1 year"))
    project.results.set(b.id, col.id, ExtractionResult(value="2 years"))
    project.set_selected_cell((a.id, col.id))
    project.toggle_document_selection(a.id)

    project.remove_document(a.id)

    assert a.id not in project.documents
    assert project.results.row(a.id) == {}
    assert project.results.get(b.id, col.id).value == "2 years"
    assert project.selected_cell is None
    assert project.selected_documents == []


def test_selected_cell_on_other_document_survives_removal(project):
    a, b = make_doc("a.txt", "A"), make_doc("b.txt", "B")
    project.add_documents([a, b])
    col = project.add_column("Term", "What is the term?")
    project.set_selected_cell((b.id, col.id))
    project.remove_document(a.id)
    assert project.selected_cell == (b.id, col.id)


def test_documents_in_scope_follows_selection(project):
    docs = [make_doc(f"{i}.txt", str(i)) for i in range(3)]
    project.add_documents(docs)
    assert project.documents_in_scope() == docs
    project.toggle_document_selection(docs[2].id)
    assert project.documents_in_scope() == [docs[2]]
    project.toggle_document_selection(docs[2].id)
    assert project.documents_in_scope() == docs


def test_select_column_needs_two_options(project):
    with pytest.raises(ValidationError):
        project.add_column("Law", "Governing law?", "select", ["Delaware", "  "])
    col = project.add_column("Law", "Governing law?", "select", ["Delaware", " New York ", ""])
    assert col.options == ["Delaware", "New York"]


def test_options_dropped_for_non_select(project):
    col = project.add_column("Term", "What is the term?", "text", ["x", "y"])
    assert col.options is None


def test_update_column_revalidates(project):
    col = project.add_column("Law", "Governing law?")
    with pytest.raises(ValidationError):
        project.update_column(col.id, type="select")
    assert col.type.value == "text"
    project.update_column(col.id, type="select", options=["Delaware", "New York"], name="Jurisdiction")
    assert col.name == "Jurisdiction"
    assert col.options == ["Delaware", "New York"]


def test_unknown_column_type_rejected(project):
    with pytest.raises(ValidationError):
        project.add_column("X", "Y", "percentage")


def test_reorder_columns(project):
    cols = [project.add_column(f"C{i}", "p") for i in range(3)]
    project.reorder_columns([cols[2].id, cols[0].id, cols[1].id])
    assert [(c.name, c.order) for c in project.columns] == [("C2", 0), ("C0", 1), ("C1", 2)]
    with pytest.raises(ValidationError):
        project.reorder_columns([cols[0].id])


def test_apply_template_appends_after_existing(project):
    project.add_column("Existing", "Something?")
    added = project.apply_template(get_template("service-agreements"))
    assert len(added) == 8
    assert [c.order for c in project.columns] == list(range(9))
    assert len({c.id for c in project.columns}) == 9
    auto = next(c for c in added if c.name == "Auto-Renewal")
    assert auto.type.value == "boolean"


def test_template_catalogue():
    assert len(TEMPLATES) == 6
    with pytest.raises(NotFound):
        get_template("no-such-template")


def test_reset_clears_everything(two_docs_one_column):
    project, a, b, col = two_docs_one_column
    project.results.set(a.id, col.id, ExtractionResult(value="Yes"))
    project.add_chat_message("user", "hi")
    project.reset()
    assert project.documents == {} and project.columns == [] and project.chat_history == []
    assert project.results.count() == 0


def test_reset_keeps_project_name(project):
    project.name = "Q3 Lease Review"
    project.add_documents([make_doc("a.txt", "A")])
    project.reset()
    assert project.name == "Q3 Lease Review"
    assert project.documents == {}


async def test_reset_cancels_running_bulk_task(project):
    cancel = asyncio.Event()
    task = asyncio.create_task(asyncio.sleep(3600))
    project.cancel_event = cancel
    project.bulk_task = task

    project.reset()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert task.cancelled()
    assert cancel.is_set()
    assert project.bulk_task is None and project.cancel_event is None
