import csv
import io
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

# --- CONFIGURATION ---
DEFAULT_WORD_COLUMN = "Vocab Word"
DEFAULT_POS_COLUMN = "Identifying Part Of Speach"
DEFAULT_DEFINITION_COLUMN = "Definition"
DEFAULT_EXAMPLE_COLUMN = "Example Sentance"


class ParseError(ValueError):
    """Raised when an upload cannot be read as a card CSV at all.

    Rows that are merely incomplete are not errors; they are dropped by
    normalize().
    """

    def __init__(self, message, missing_columns=()):
        super().__init__(message)
        self.missing_columns = tuple(missing_columns)


class ColumnMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    word_column: str = DEFAULT_WORD_COLUMN
    pos_column: str = DEFAULT_POS_COLUMN
    definition_column: str = DEFAULT_DEFINITION_COLUMN
    example_column: str = DEFAULT_EXAMPLE_COLUMN

    def as_tuple(self) -> Tuple[str, str, str, str]:
        return (self.word_column, self.pos_column, self.definition_column, self.example_column)


DEFAULT_COLUMNS = ColumnMapping()


class CardRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    word: str
    part_of_speech: str
    definition: str
    example: str
    display_index: int


def _decode(raw_csv) -> str:
    if isinstance(raw_csv, str):
        text = raw_csv
    else:
        try:
            # utf-8-sig drops the BOM spreadsheet exports like to prepend
            text = bytes(raw_csv).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"File is not valid UTF-8 text: {e}") from e
    if text.startswith("\ufeff"):
        text = text[1:]
    if "\x00" in text:
        raise ParseError("File contains NUL bytes; is it really a CSV?")
    return text


def _read_rows(text: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    try:
        return [row for row in reader]
    except csv.Error as e:
        raise ParseError(f"Malformed CSV near line {reader.line_num}: {e}") from e


def normalize(raw_csv, columns: Optional[ColumnMapping] = None) -> List[CardRecord]:
    """Parse uploaded CSV content into ordered, renumbered card records.

    Rows missing any of the four configured fields (after trimming) are
    skipped silently. Surviving rows are numbered 1..n in input order, so
    skipped rows never leave a gap in the printed numbers. An empty result
    is valid and is not an error.
    """
    columns = columns or DEFAULT_COLUMNS
    rows = _read_rows(_decode(raw_csv))

    # First non-blank row is the header
    header_pos = next((i for i, row in enumerate(rows) if any(cell.strip() for cell in row)), None)
    if header_pos is None:
        raise ParseError("CSV file is empty; expected a header row")
    header = [cell.strip() for cell in rows[header_pos]]

    missing = [name for name in columns.as_tuple() if name not in header]
    if missing:
        raise ParseError(f"Missing required columns: {', '.join(missing)}", missing_columns=missing)
    positions = [header.index(name) for name in columns.as_tuple()]

    cards = []
    for row in rows[header_pos + 1:]:
        values = [row[pos].strip() if pos < len(row) else "" for pos in positions]
        if not all(values):
            continue
        word, pos_, definition, example = values
        cards.append(CardRecord(
            word=word,
            part_of_speech=pos_,
            definition=definition,
            example=example,
            display_index=len(cards) + 1,
        ))
    return cards


def load_csv_file(file_path, columns: Optional[ColumnMapping] = None) -> List[CardRecord]:
    with open(file_path, "rb") as f:
        return normalize(f.read(), columns)


def append_cards(existing, entries) -> List[CardRecord]:
    """Add loose card entries to a card list and renumber the whole list.

    ``entries`` are mappings with ``word``, ``part_of_speech``,
    ``definition`` and ``example``. Incomplete entries are skipped the same
    way incomplete CSV rows are.
    """
    fields = ("word", "part_of_speech", "definition", "example")
    kept = list(existing)
    for entry in entries:
        values = [str(entry.get(name) or "").strip() for name in fields]
        if not all(values):
            continue
        kept.append(CardRecord(display_index=0, **dict(zip(fields, values))))
    return [card.model_copy(update={"display_index": i}) for i, card in enumerate(kept, start=1)]


def write_card_csv(cards, f, columns: Optional[ColumnMapping] = None):
    columns = columns or DEFAULT_COLUMNS
    writer = csv.writer(f)
    writer.writerow(columns.as_tuple())
    for card in cards:
        writer.writerow([card.word, card.part_of_speech, card.definition, card.example])


def save_card_list_as_csv(cards, csv_path, columns: Optional[ColumnMapping] = None):
    with open(csv_path, "w", newline="", encoding="utf-8") as f:
        write_card_csv(cards, f, columns)
