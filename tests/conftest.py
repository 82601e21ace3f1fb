# tests/conftest.py
# --- ensure project root on sys.path ---
import os, sys
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
# --- end ---

# до импорта logger/state: локальный режим и память вместо Supabase
os.environ["LOCAL_DEV"] = "1"
os.environ["STORAGE_BACKEND"] = "memory"

import copy, itertools
import pytest
from flask import Flask
from state import state
from utils import masters, media, tickets
from utils import telegram_senders as tg
from wizard import callback_data as cb
from router import route_callback, route_message
from routes.webhook_route import webhook_bp

CHAT_ID = -100123
USER_ID = 42
BOT_ID = 777

# Дерево для тестов:
#   A → B (лист), A → C → D (лист);  L: корень-лист;  Z: корень с одним листом Z1
MASTERS = {
    "categories": [
        {"id": "cat-full", "name": "facilities", "display_name": "Facilities", "icon": "🛠",
         "keywords": ["leak"], "is_active": True, "priority": 10},
        {"id": "cat-simple", "name": "simple", "display_name": "Simple",
         "keywords": ["bulb"], "is_active": True, "priority": 5},
        {"id": "cat-norule", "name": "norule", "display_name": "No Rule",
         "keywords": [], "is_active": True, "priority": 1},
        {"id": "cat-extra", "name": "extras", "display_name": "Extras",
         "keywords": [], "is_active": True, "priority": 0},
        {"id": "cat-move", "name": "moving", "display_name": "Moving",
         "keywords": ["furniture"], "is_active": True, "priority": 0},
        {"id": "cat-old", "name": "old", "display_name": "Old",
         "keywords": ["old"], "is_active": False, "priority": 0},
    ],
    "sub_categories": [
        {"id": "sub-x", "category_id": "cat-full", "name": "X", "is_active": True},
        {"id": "sub-y", "category_id": "cat-full", "name": "Y", "is_active": True},
    ],
    "locations": [
        {"id": "A", "name": "A", "parent_location_id": None},
        {"id": "B", "name": "B", "parent_location_id": "A"},
        {"id": "C", "name": "C", "parent_location_id": "A"},
        {"id": "D", "name": "D", "parent_location_id": "C"},
        {"id": "L", "name": "L", "parent_location_id": None},
        {"id": "Z", "name": "Z", "parent_location_id": None},
        {"id": "Z1", "name": "Z1", "parent_location_id": "Z"},
        {"id": "GONE", "name": "Gone", "parent_location_id": "Z", "is_active": False},
    ],
    "workflow_rules": [
        {"category_id": "cat-full", "has_subcategories": True, "requires_location": True,
         "requires_agency": True, "requires_agency_date": True},
        {"category_id": "cat-simple", "has_subcategories": False, "requires_location": True,
         "requires_agency": False, "additional_fields": []},
        {"category_id": "cat-extra", "additional_fields": [
            {"key": "slot", "label": "Time slot", "type": "select", "options": ["Morning", "Evening"]},
            {"key": "qty", "label": "Quantity", "type": "number"},
            {"key": "due", "label": "Due date", "type": "date"},
            {"key": "note", "label": "Note", "type": "text"},
        ]},
        {"category_id": "cat-move", "requires_location": True,
         "requires_source_location": True, "requires_target_location": True,
         "requires_agency": True, "agency_type": "name", "agency_list": ["FastMove", "CityVans"]},
    ],
}


@pytest.fixture(autouse=True)
def masters_data(monkeypatch):
    """
    Справочники в памяти + чистые хранилища на каждый тест.
    Возвращаем сам словарь: тест может «удалить» правило посреди мастера.
    """
    monkeypatch.setenv("LOCAL_DEV", "1")
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test-token")
    data = copy.deepcopy(MASTERS)
    masters.use_local(data)
    state.clear_all()
    tickets.clear_all()
    yield data
    masters.use_local(None)
    state.clear_all()
    tickets.clear_all()


@pytest.fixture
def fake_telegram(monkeypatch):
    """
    Подменяем Bot API на сбор в список: ни один HTTP-запрос в тестах не уйдёт.
    send_message выдаёт растущие message_id, как настоящий Telegram.
    """
    sent = []
    ids = itertools.count(1000)

    def _send_message(chat_id, text, reply_to=None, keyboard=None):
        mid = next(ids)
        sent.append({"type": "send", "chat_id": chat_id, "text": text,
                     "reply_to": reply_to, "keyboard": keyboard, "message_id": mid})
        return mid

    def _edit_message(chat_id, message_id, text, keyboard=None):
        sent.append({"type": "edit", "chat_id": chat_id, "message_id": message_id,
                     "text": text, "keyboard": keyboard})
        return True

    def _answer_callback(callback_id, text=None, show_alert=False):
        sent.append({"type": "answer", "callback_id": callback_id, "text": text, "show_alert": show_alert})

    def _delete_message(chat_id, message_id):
        sent.append({"type": "delete", "chat_id": chat_id, "message_id": message_id})

    def _get_file_bytes(file_id):
        sent.append({"type": "get_file", "file_id": file_id})
        return b"\xff\xd8fake-jpeg"

    monkeypatch.setattr(tg, "send_message", _send_message)
    monkeypatch.setattr(tg, "edit_message", _edit_message)
    monkeypatch.setattr(tg, "answer_callback", _answer_callback)
    monkeypatch.setattr(tg, "delete_message", _delete_message)
    monkeypatch.setattr(tg, "get_file_bytes", _get_file_bytes)
    return sent


@pytest.fixture
def fake_s3(monkeypatch):
    uploads = []

    def _upload_image(data: bytes, suffix: str = ".jpg") -> str:
        uploads.append(data)
        return f"https://cdn.test/tickets/{len(uploads)}{suffix}"

    monkeypatch.setattr(media, "upload_image", _upload_image)
    return uploads


class WizardDriver:
    """Короткие вызовы router'а так, как их присылает Telegram."""

    def __init__(self, sent):
        self.sent = sent
        self._cb_ids = itertools.count(1)
        self._msg_ids = itertools.count(1)

    def message(self, text="", user_id=USER_ID, chat_type="supergroup", reply_to=None, photo=None):
        msg = {
            "message_id": next(self._msg_ids),
            "chat": {"id": CHAT_ID, "type": chat_type},
            "from": {"id": user_id, "username": f"user{user_id}"},
            "text": text,
        }
        if reply_to is not None:
            # Telegram кладёт в reply_to_message plain-текст сообщения бота
            msg["reply_to_message"] = {"message_id": reply_to, "from": {"id": BOT_ID, "is_bot": True},
                                       "text": "🎫 New ticket\n📝 Something is broken on site"}
        if photo:
            msg["photo"] = [{"file_id": f"{photo}-small"}, {"file_id": photo}]
        return route_message(msg)

    def open(self, text="Something is broken on site", **kw) -> int:
        result = self.message(text, **kw)
        assert result["ok"] is True, result
        return result["ref"]

    def click(self, ref, action, key="", value="", user_id=USER_ID):
        return route_callback({
            "id": f"cb-{next(self._cb_ids)}",
            "from": {"id": user_id, "username": f"user{user_id}"},
            "message": {"message_id": ref, "chat": {"id": CHAT_ID}},
            "data": cb.encode(action, ref, key, value),
        })

    def select(self, ref, key, value):
        return self.click(ref, cb.SELECT, key, value)

    def reply(self, ref, text, **kw):
        return self.message(text, reply_to=ref, **kw)

    def session(self, ref):
        return state.get_session(ref)

    def last_render(self, ref):
        edits = [m for m in self.sent if m["type"] == "edit" and m["message_id"] == ref]
        return edits[-1] if edits else None

    def buttons(self, ref):
        render = self.last_render(ref)
        return [b for row in (render["keyboard"] or []) for b in row] if render else []

    def button_texts(self, ref):
        return [b["text"] for b in self.buttons(ref)]

    def answers(self):
        return [m for m in self.sent if m["type"] == "answer"]


@pytest.fixture
def wizard(fake_telegram, fake_s3):
    return WizardDriver(fake_telegram)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", "shhh")

    app = Flask(__name__)
    app.config.update(
        TESTING=True,
        TELEGRAM_WEBHOOK_SECRET="shhh",
    )
    app.register_blueprint(webhook_bp)
    return app.test_client()
