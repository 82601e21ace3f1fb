import time
import pytest
from state import state
from utils import tickets
from wizard import callback_data as cb
from wizard import handlers
from wizard.message_builder import CANCELLED_TEXT, EXPIRED_TEXT


def _walk_to_agency(wizard, ref):
    assert wizard.select(ref, "category", "cat-full")["ok"]
    assert wizard.select(ref, "priority", "high")["ok"]
    assert wizard.select(ref, "subcategory", "sub-x")["ok"]
    assert wizard.select(ref, "location", "L")["leaf"] is True


def test_full_flow_with_agency_date(wizard, fake_telegram):
    ref = wizard.open()
    _walk_to_agency(wizard, ref)
    wizard.select(ref, "agency", "yes")
    assert wizard.session(ref)["pending_input"] == "agency_date"

    assert wizard.reply(ref, "2025-03-01")["ok"] is True
    s = wizard.session(ref)
    assert s["current_step"] == "complete"
    assert s["pending_input"] is None

    result = wizard.click(ref, cb.SUBMIT)
    assert result["ok"] is True and result["ticket_id"] == "TCK-001"

    ticket = tickets.get_ticket("TCK-001")
    assert ticket["priority"] == "high"
    assert ticket["sub_category"] == "X"
    assert ticket["location"] == "L"
    assert ticket["agency_required"] is True
    assert ticket["agency_date"] == "2025-03-01"
    assert ticket["created_by"] == "@user42"

    assert state.get_session(ref) is None
    sends = [m for m in fake_telegram if m["type"] == "send"]
    assert len(sends) == 2                          # заглушка мастера + подтверждение
    assert "TCK-001" in sends[-1]["text"]
    assert ticket["telegram_message_id"] == sends[-1]["message_id"]
    assert {"type": "delete", "chat_id": -100123, "message_id": ref} in fake_telegram


def test_agency_no_skips_date_prompt(wizard, fake_telegram):
    ref = wizard.open()
    _walk_to_agency(wizard, ref)
    wizard.select(ref, "agency", "no")

    assert "Create Ticket" in wizard.last_render(ref)["text"]
    renders = [m["text"] for m in fake_telegram if m["type"] == "edit"]
    assert not any("👉 <b>Agency Date</b>" in t for t in renders)
    assert wizard.click(ref, cb.SUBMIT)["ok"] is True


def test_every_step_edits_the_same_message(wizard, fake_telegram):
    ref = wizard.open()
    _walk_to_agency(wizard, ref)
    assert [m for m in fake_telegram if m["type"] == "send"] == [fake_telegram[0]]
    assert all(m["message_id"] == ref for m in fake_telegram if m["type"] == "edit")


def test_submit_blocked_until_complete(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    result = wizard.click(ref, cb.SUBMIT)
    assert result == {"ok": False, "error": "submit_blocked", "missing": "priority"}
    assert wizard.answers()[-1]["show_alert"] is True
    assert tickets.list_tickets() == []
    assert wizard.session(ref) is not None


def test_cancel_creates_nothing(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    assert wizard.click(ref, cb.CANCEL)["cancelled"] is True
    assert wizard.session(ref) is None
    assert wizard.last_render(ref)["text"] == CANCELLED_TEXT
    assert tickets.list_tickets() == []


def test_expired_session_gets_clear_answer(wizard):
    ref = wizard.open()
    state.update_session(ref, {"created_at": time.time() - 7200})
    result = wizard.select(ref, "category", "cat-simple")
    assert result == {"ok": False, "error": "expired"}
    assert wizard.answers()[-1]["show_alert"] is True
    assert wizard.last_render(ref)["text"] == EXPIRED_TEXT


def test_bad_date_keeps_session_and_asks_again(wizard):
    ref = wizard.open()
    _walk_to_agency(wizard, ref)
    wizard.select(ref, "agency", "yes")
    result = wizard.reply(ref, "next tuesday")
    assert result["error"] == "validation"
    s = wizard.session(ref)
    assert s["agency_date"] is None
    assert s["pending_input"] == "agency_date"
    assert "⚠️ Couldn't read" in wizard.last_render(ref)["text"]


def test_second_submit_cannot_create_second_ticket(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    wizard.select(ref, "priority", "low")
    wizard.select(ref, "location", "L")

    # оба события успели перечитать сессию до удаления
    loaded = state.get_session(ref)
    token = cb.Token(cb.SUBMIT, ref)
    ctx = {"callback_id": "x", "chat_id": -100123, "user_id": 42, "user_name": "@user42"}
    first = handlers.handle_submit(loaded, token, ctx)
    second = handlers.handle_submit(loaded, token, ctx)
    assert first["ok"] is True
    assert second == {"ok": False, "error": "already_claimed"}
    assert len(tickets.list_tickets()) == 1


def test_failed_materialization_restores_session(wizard, monkeypatch):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    wizard.select(ref, "priority", "low")
    wizard.select(ref, "location", "L")

    def _boom(fields):
        raise RuntimeError("ticket store down")
    monkeypatch.setattr(tickets, "create_ticket", _boom)

    assert wizard.click(ref, cb.SUBMIT)["error"] == "internal"
    assert wizard.session(ref) is not None
    assert wizard.answers()[-1]["text"] == "Technical error, please try again later."


def test_category_autodetected_from_keywords(wizard):
    ref = wizard.message("There is a leak in the kitchen")["ref"]
    s = wizard.session(ref)
    assert s["category"] == "cat-full"
    assert s["current_step"] == "priority"


def test_location_tree_and_back(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    wizard.select(ref, "priority", "low")
    assert wizard.select(ref, "location", "A")["leaf"] is False
    assert wizard.button_texts(ref)[:2] == ["B", "C"]

    wizard.click(ref, cb.BACK, "location", "A")
    assert wizard.button_texts(ref)[:3] == ["A", "L", "Z"]
    assert [n["id"] for n in wizard.session(ref)["location_path"]] == ["A"]

    wizard.select(ref, "location", "C")
    wizard.select(ref, "location", "D")
    s = wizard.session(ref)
    assert s["location_complete"] is True
    assert [n["id"] for n in s["location_path"]] == ["A", "C", "D"]


def test_missing_location_is_a_notice(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    wizard.select(ref, "priority", "low")
    assert wizard.select(ref, "location", "nope")["error"] == "not_found"
    assert wizard.session(ref)["location_path"] == []
    assert "⚠️" in wizard.last_render(ref)["text"]


def test_value_outside_domain_rejected(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    assert wizard.select(ref, "priority", "urgent")["error"] == "validation"
    assert wizard.session(ref)["priority"] is None


def test_button_for_field_not_in_schema(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    assert wizard.select(ref, "subcategory", "sub-x")["error"] == "stale_field"
    assert wizard.session(ref)["sub_category_id"] is None


def test_manual_category_and_location_text(wizard):
    ref = wizard.open()
    wizard.click(ref, cb.TYPE, "category")
    assert wizard.session(ref)["pending_input"] == "category"
    assert wizard.reply(ref, "Simple")["ok"] is True
    wizard.select(ref, "priority", "low")

    wizard.click(ref, cb.TYPE, "location")
    # не ответом, а просто следующим сообщением того же пользователя
    assert wizard.message("Behind the gym")["ok"] is True
    s = wizard.session(ref)
    assert s["custom_location"] == "Behind the gym"
    assert s["current_step"] == "complete"


def test_text_ignored_when_not_waiting(wizard):
    ref = wizard.open()
    assert wizard.reply(ref, "hello there")["error"] == "not_waiting"
    assert wizard.session(ref)["category"] is None


def test_edit_category_clears_subcategory(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-full")
    wizard.select(ref, "priority", "high")
    wizard.select(ref, "subcategory", "sub-y")
    wizard.click(ref, cb.EDIT, "category")
    s = wizard.session(ref)
    assert s["category"] is None and s["sub_category_id"] is None
    assert s["priority"] == "high"
    assert s["current_step"] == "category"


def test_edit_location_restarts_at_root(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-simple")
    wizard.select(ref, "priority", "low")
    wizard.select(ref, "location", "A")
    wizard.select(ref, "location", "B")
    wizard.click(ref, cb.EDIT, "location")
    s = wizard.session(ref)
    assert s["location_path"] == [] and s["location_complete"] is False
    assert wizard.button_texts(ref)[:3] == ["A", "L", "Z"]


def test_skip_agency_date(wizard):
    ref = wizard.open()
    _walk_to_agency(wizard, ref)
    wizard.select(ref, "agency", "yes")
    assert wizard.click(ref, cb.SKIP, "agency_date")["ok"] is True
    s = wizard.session(ref)
    assert s["agency_date_skipped"] is True and s["pending_input"] is None
    ticket_id = wizard.click(ref, cb.SUBMIT)["ticket_id"]
    assert tickets.get_ticket(ticket_id)["agency_date"] is None


def test_additional_fields_flow(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-extra")
    wizard.select(ref, "priority", "medium")
    wizard.select(ref, "field_slot", "0")
    assert wizard.session(ref)["pending_input"] == "field_qty"
    assert wizard.reply(ref, "lots")["error"] == "validation"
    wizard.reply(ref, "4")
    wizard.reply(ref, "01.03.2025")
    wizard.reply(ref, "Bring a ladder")
    s = wizard.session(ref)
    assert s["additional_field_values"] == {
        "slot": "Morning", "qty": 4, "due": "2025-03-01", "note": "Bring a ladder"}
    ticket_id = wizard.click(ref, cb.SUBMIT)["ticket_id"]
    assert tickets.get_ticket(ticket_id)["additional_fields"]["qty"] == 4


def test_photo_reply_is_attached(wizard, fake_s3):
    ref = wizard.open()
    result = wizard.reply(ref, "", photo="ph-1")
    assert result["ok"] is True
    assert wizard.session(ref)["photos"] == ["https://cdn.test/tickets/1.jpg"]
    assert "📷 Photos: 1" in wizard.last_render(ref)["text"]


def test_photo_opens_wizard(wizard):
    ref = wizard.message("", photo="ph-2")["ref"]
    s = wizard.session(ref)
    assert s["original_text"] == "Photo attachment"
    assert len(s["photos"]) == 1


@pytest.mark.parametrize("text,kw,reason", [
    ("hi", {}, "too_short"),
    ("Printer is jammed again", {"chat_type": "private"}, "chat_type"),
    ("/start", {}, "command"),
])
def test_messages_that_do_not_open_wizard(wizard, fake_telegram, text, kw, reason):
    assert wizard.message(text, **kw)["ignored"] == reason
    assert fake_telegram == []


def test_garbage_callback_is_acknowledged(wizard, fake_telegram):
    from router import route_callback
    result = route_callback({"id": "cb-x", "data": "garbage", "message": {"chat": {"id": 1}}})
    assert result == {"ok": False, "error": "bad_token"}
    assert fake_telegram == [{"type": "answer", "callback_id": "cb-x", "text": None, "show_alert": False}]


def test_category_switch_ticket_follows_new_rule(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-move")
    wizard.select(ref, "priority", "high")
    wizard.select(ref, "source_location", "L")
    wizard.select(ref, "target_location", "A")
    wizard.select(ref, "target_location", "B")
    wizard.select(ref, "agency", "0")                          # FastMove

    wizard.click(ref, cb.EDIT, "category")
    wizard.select(ref, "category", "cat-simple")
    wizard.select(ref, "location", "Z")
    wizard.select(ref, "location", "Z1")
    assert "Z → Z1" in wizard.last_render(ref)["text"]

    ticket = tickets.get_ticket(wizard.click(ref, cb.SUBMIT)["ticket_id"])
    assert ticket["location"] == "Z → Z1"
    assert ticket["source_location"] is None and ticket["target_location"] is None
    assert ticket["agency_required"] is False and ticket["agency_name"] is None
    assert list(ticket["location_paths"]) == ["location"]


def test_category_switch_drops_old_extras(wizard):
    ref = wizard.open()
    wizard.select(ref, "category", "cat-extra")
    wizard.select(ref, "priority", "medium")
    wizard.select(ref, "field_slot", "1")
    wizard.reply(ref, "4")

    wizard.click(ref, cb.EDIT, "category")
    wizard.select(ref, "category", "cat-simple")
    wizard.select(ref, "location", "L")
    ticket = tickets.get_ticket(wizard.click(ref, cb.SUBMIT)["ticket_id"])
    assert ticket["additional_fields"] == {}


def test_reply_to_expired_wizard_does_not_open_new_one(wizard, fake_telegram):
    ref = wizard.open()
    state.update_session(ref, {"created_at": time.time() - 7200})
    assert wizard.reply(ref, "2025-03-01") == {"ok": False, "error": "expired"}
    sends = [m for m in fake_telegram if m["type"] == "send"]
    assert len(sends) == 2 and sends[-1]["text"] == EXPIRED_TEXT


def test_reply_to_cancelled_wizard_gets_expired_notice(wizard, fake_telegram):
    ref = wizard.open()
    wizard.click(ref, cb.CANCEL)
    assert wizard.reply(ref, "Broken door at the entrance")["error"] == "expired"
    assert tickets.list_tickets() == []
    assert [m["text"] for m in fake_telegram if m["type"] == "send"][-1] == EXPIRED_TEXT


def test_reply_to_other_bot_message_is_ignored(wizard, fake_telegram):
    from router import route_message
    result = route_message({
        "message_id": 50,
        "chat": {"id": -100123, "type": "supergroup"},
        "from": {"id": 42, "username": "user42"},
        "text": "thanks, that was quick",
        "reply_to_message": {"message_id": 900, "from": {"id": 777, "is_bot": True},
                             "text": "✅ Ticket TCK-001 created"},
    })
    assert result == {"ok": False, "ignored": "bot_reply"}
    assert fake_telegram == []


def test_new_issue_not_swallowed_by_waiting_date(wizard):
    ref = wizard.open()
    _walk_to_agency(wizard, ref)
    wizard.select(ref, "agency", "yes")
    assert "✍️ Type answer" in wizard.button_texts(ref)

    result = wizard.message("Water leak in the kitchen of block 3")
    assert result["ok"] is True and result["ref"] != ref
    assert wizard.session(ref)["agency_date"] is None
    assert wizard.session(ref)["pending_input"] == "agency_date"


def test_type_answer_accepts_next_plain_message(wizard):
    ref = wizard.open()
    _walk_to_agency(wizard, ref)
    wizard.select(ref, "agency", "yes")
    assert wizard.click(ref, cb.TYPE, "agency_date")["ok"] is True
    assert wizard.session(ref)["input_requested"] is True

    assert wizard.message("2025-03-01")["ok"] is True
    s = wizard.session(ref)
    assert s["agency_date"] == "2025-03-01"
    assert s["input_requested"] is False
