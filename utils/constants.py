# utils/constants.py
"""
Словарь мастера заявок: ключи полей, подписи, коды для callback_data.
Ключи полей: те же, что видит код и что лежит в current_step сессии.
"""
CATEGORY        = "category"
PRIORITY        = "priority"
SUBCATEGORY     = "subcategory"
LOCATION        = "location"
SOURCE_LOCATION = "source_location"
TARGET_LOCATION = "target_location"
AGENCY          = "agency"
AGENCY_DATE     = "agency_date"
FIELD_PREFIX    = "field_"            # field_<key>: доп. поля из WorkflowRule

LOCATION_ROLES = (LOCATION, SOURCE_LOCATION, TARGET_LOCATION)

LABELS = {
    CATEGORY:        "Category",
    PRIORITY:        "Priority",
    SUBCATEGORY:     "Subcategory",
    LOCATION:        "Location",
    SOURCE_LOCATION: "From Location",
    TARGET_LOCATION: "To Location",
    AGENCY:          "Agency",
    AGENCY_DATE:     "Agency Date",
}

# короткие коды: callback_data у Telegram не длиннее 64 байт
FIELD_CODES = {
    CATEGORY:        "cat",
    PRIORITY:        "pri",
    SUBCATEGORY:     "sub",
    LOCATION:        "loc",
    SOURCE_LOCATION: "src",
    TARGET_LOCATION: "dst",
    AGENCY:          "agy",
    AGENCY_DATE:     "agd",
}
EXTRA_CODE_PREFIX = "f."

# порядок кнопок = порядок в интерфейсе
PRIORITIES = {
    "high":   "🔴 High",
    "medium": "🟡 Medium",
    "low":    "🟢 Low",
}

PATH_SEPARATOR = " → "
DATE_FORMAT    = "%Y-%m-%d"
EMPTY_VALUE    = "—"
ROOT_SENTINEL  = "root"

DEFAULT_SESSION_TTL_SEC = 3600        # брошенный мастер живёт час
DEFAULT_MIN_ISSUE_TEXT_LEN = 6
TICKET_ID_PREFIX = "TCK-"
