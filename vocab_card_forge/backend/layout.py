import math
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .cards import CardRecord

# --- CONFIGURATION ---
# All geometry is in inches, top-left origin, y growing downward.
PAGE_WIDTH_IN = 11.0
PAGE_HEIGHT_IN = 8.5

CARD_WIDTH_IN = 4.5
CARD_HEIGHT_IN = 3.5
CARD_SPACING_IN = 0.5

# Centres the 2x2 grid so reflected back cells land on grid cells
LEFT_MARGIN_IN = 0.75
TOP_MARGIN_IN = 0.5

GRID_COLS = 2
GRID_ROWS = 2
CARDS_PER_SHEET = GRID_COLS * GRID_ROWS

MAX_LINE_WIDTH = 45
LINE_PITCH_IN = 0.25

INDEX_FONT_SIZE = 14
WORD_FONT_SIZE = 28
POS_FONT_SIZE = 16
LABEL_FONT_SIZE = 14
BODY_FONT_SIZE = 12

INDEX_INSET_X_IN = 0.2
INDEX_INSET_Y_IN = 0.4
LABEL_INSET_X_IN = 0.3
BODY_INSET_X_IN = 0.4
BACK_TEXT_START_IN = 0.8
LABEL_GAP_IN = 0.4
SECTION_GAP_IN = 0.3


class LayoutConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_width: float = PAGE_WIDTH_IN
    page_height: float = PAGE_HEIGHT_IN
    cell_width: float = CARD_WIDTH_IN
    cell_height: float = CARD_HEIGHT_IN
    margin_left: float = LEFT_MARGIN_IN
    margin_top: float = TOP_MARGIN_IN
    cell_spacing: float = CARD_SPACING_IN
    max_line_width: int = MAX_LINE_WIDTH
    line_pitch: float = LINE_PITCH_IN

    def validate_geometry(self):
        for name in ("page_width", "page_height", "cell_width", "cell_height", "line_pitch"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("margin_left", "margin_top", "cell_spacing"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative, got {getattr(self, name)}")
        if self.max_line_width <= 0:
            raise ValueError(f"max_line_width must be positive, got {self.max_line_width}")
        grid_right = self.margin_left + GRID_COLS * self.cell_width + (GRID_COLS - 1) * self.cell_spacing
        grid_bottom = self.margin_top + GRID_ROWS * self.cell_height + (GRID_ROWS - 1) * self.cell_spacing
        if grid_right > self.page_width or grid_bottom > self.page_height:
            raise ValueError(
                f"Card grid ({grid_right:.2f} x {grid_bottom:.2f}) does not fit on a "
                f"{self.page_width} x {self.page_height} page"
            )
        return self


DEFAULT_LAYOUT = LayoutConfig()


class TextItem(BaseModel):
    text: str
    x: float
    y: float
    font_size: float
    bold: bool = False
    align: str = "left"


class CardCell(BaseModel):
    slot: int
    row: int
    col: int
    x: float
    y: float
    width: float
    height: float
    card: CardRecord
    texts: List[TextItem] = []


class LayoutPage(BaseModel):
    side: str
    cells: List[CardCell] = []


class PagePair(BaseModel):
    batch_number: int
    front: LayoutPage
    back: LayoutPage
    cards: List[CardRecord]


def batch_cards(cards, size=CARDS_PER_SHEET) -> List[List[CardRecord]]:
    if size <= 0:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [list(cards[i:i + size]) for i in range(0, len(cards), size)]


def grid_slot(i, cols=GRID_COLS) -> Tuple[int, int]:
    return i // cols, i % cols


def pair_index(i, rows=GRID_ROWS, cols=GRID_COLS) -> int:
    """Slot that receives the back of the card printed in front slot ``i``.

    The back sheet is the front sheet rotated 180 degrees, so the slot is the
    point reflection of ``i`` through the centre of the grid. Both the PDF
    geometry and the preview grids are derived from this one mapping.
    """
    if not 0 <= i < rows * cols:
        raise ValueError(f"Slot {i} is outside a {rows}x{cols} grid")
    row, col = grid_slot(i, cols)
    return (rows - 1 - row) * cols + (cols - 1 - col)


def slot_permutation(side, rows=GRID_ROWS, cols=GRID_COLS, column_major=False) -> List[int]:
    """Card order for drawing one side of a sheet slot by slot.

    Entry ``k`` is the batch position of the card shown in the ``k``-th
    display slot. Reading order walks rows first; ``column_major`` walks
    columns first, for containers that flow top-to-bottom.
    """
    if side not in ("front", "back"):
        raise ValueError(f"Unknown side: {side}")
    total = rows * cols
    by_slot = list(range(total))
    if side == "back":
        by_slot = [0] * total
        for i in range(total):
            by_slot[pair_index(i, rows, cols)] = i
    if not column_major:
        return by_slot
    return [by_slot[r * cols + c] for c in range(cols) for r in range(rows)]


def front_origin(i, config: LayoutConfig = DEFAULT_LAYOUT) -> Tuple[float, float]:
    row, col = grid_slot(i)
    x = config.margin_left + col * (config.cell_width + config.cell_spacing)
    y = config.margin_top + row * (config.cell_height + config.cell_spacing)
    return x, y


def back_origin(front_x, front_y, config: LayoutConfig = DEFAULT_LAYOUT) -> Tuple[float, float]:
    return (
        config.page_width - (front_x + config.cell_width),
        config.page_height - (front_y + config.cell_height),
    )


def wrap_text(text, max_line_width=MAX_LINE_WIDTH) -> List[str]:
    """Greedy word wrap on whitespace.

    A word longer than ``max_line_width`` is kept whole on its own line.
    """
    if max_line_width <= 0:
        raise ValueError(f"max_line_width must be positive, got {max_line_width}")
    lines = []
    buffer = ""
    for word in (text or "").split():
        if len(buffer) + len(word) + 1 > max_line_width and buffer:
            lines.append(buffer.rstrip())
            buffer = ""
        buffer += word + " "
    if buffer:
        lines.append(buffer.rstrip())
    return lines


def _front_texts(card, x, y, config) -> List[TextItem]:
    centre_x = x + config.cell_width / 2
    return [
        TextItem(text=f"#{card.display_index}", x=x + INDEX_INSET_X_IN, y=y + INDEX_INSET_Y_IN, font_size=INDEX_FONT_SIZE),
        TextItem(text=card.word, x=centre_x, y=y + config.cell_height * 0.4, font_size=WORD_FONT_SIZE, align="center"),
        TextItem(text=card.part_of_speech, x=centre_x, y=y + config.cell_height * 0.6, font_size=POS_FONT_SIZE, align="center"),
    ]


def _back_texts(card, x, y, config) -> List[TextItem]:
    texts = [TextItem(text=f"#{card.display_index}", x=x + INDEX_INSET_X_IN, y=y + INDEX_INSET_Y_IN, font_size=INDEX_FONT_SIZE)]
    text_y = y + BACK_TEXT_START_IN
    sections = (("Definition:", card.definition), ("Example:", card.example))
    for n, (label, body) in enumerate(sections):
        if n:
            text_y += SECTION_GAP_IN
        texts.append(TextItem(text=label, x=x + LABEL_INSET_X_IN, y=text_y, font_size=LABEL_FONT_SIZE, bold=True))
        text_y += LABEL_GAP_IN
        for line in wrap_text(body, config.max_line_width):
            texts.append(TextItem(text=line, x=x + BODY_INSET_X_IN, y=text_y, font_size=BODY_FONT_SIZE))
            text_y += config.line_pitch
    return texts


def _cell(slot, x, y, card, texts, config) -> CardCell:
    row, col = grid_slot(slot)
    return CardCell(
        slot=slot, row=row, col=col, x=x, y=y,
        width=config.cell_width, height=config.cell_height,
        card=card, texts=texts,
    )


def layout_batch(batch, batch_number, config: LayoutConfig = DEFAULT_LAYOUT) -> PagePair:
    front_cells = []
    back_cells = []
    for i, card in enumerate(batch):
        front_x, front_y = front_origin(i, config)
        front_cells.append(_cell(i, front_x, front_y, card, _front_texts(card, front_x, front_y, config), config))
        back_x, back_y = back_origin(front_x, front_y, config)
        back_cells.append(_cell(pair_index(i), back_x, back_y, card, _back_texts(card, back_x, back_y, config), config))
    return PagePair(
        batch_number=batch_number,
        front=LayoutPage(side="front", cells=front_cells),
        back=LayoutPage(side="back", cells=back_cells),
        cards=list(batch),
    )


def layout(cards, config: Optional[LayoutConfig] = None) -> List[PagePair]:
    """Arrange cards into front/back page pairs for long-edge duplex printing.

    Pairs come back in batch order, front page first, one pair per four
    cards.
    """
    config = (config or DEFAULT_LAYOUT).validate_geometry()
    return [layout_batch(batch, n + 1, config) for n, batch in enumerate(batch_cards(cards))]


def layout_side_by_side(cards, config: Optional[LayoutConfig] = None) -> List[LayoutPage]:
    # One card per page, term on the left and its definition on the right
    config = (config or DEFAULT_LAYOUT).validate_geometry()
    pages = []
    for card in cards:
        front_x, front_y = config.margin_left, config.margin_top
        back_x = front_x + config.cell_width + config.cell_spacing
        pages.append(LayoutPage(side="single", cells=[
            _cell(0, front_x, front_y, card, _front_texts(card, front_x, front_y, config), config),
            _cell(1, back_x, front_y, card, _back_texts(card, back_x, front_y, config), config),
        ]))
    return pages


def expected_pair_count(card_count) -> int:
    return math.ceil(card_count / CARDS_PER_SHEET)
