import os
import time
from io import BytesIO
from urllib.parse import urlparse

import requests
from reportlab.pdfgen import canvas
from reportlab.lib.units import inch, mm
from reportlab.lib.colors import HexColor

from .cards import ColumnMapping, load_csv_file, normalize, save_card_list_as_csv
from .layout import DEFAULT_LAYOUT, LayoutConfig, expected_pair_count, layout, layout_side_by_side, slot_permutation

# --- CONFIGURATION ---
DEFAULT_CUT_LINE_THICKNESS_MM = 0.25
DEFAULT_CUT_LINE_COLOR = "#000000"

BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
FOOTER_FONT = "Helvetica"
FOOTER_SIZE = 10
FOOTER_BELOW_GRID_IN = 0.3

FETCH_TIMEOUT_S = 10
RATE_LIMIT_BACKOFF_S = 5

FORMAT_MODES = ("double", "single", "both")


class FetchError(RuntimeError):
    pass


def source_name(source):
    """Human-friendly set name for a file path or URL."""
    if source.startswith("http"):
        path = urlparse(source).path.rstrip("/")
        base = os.path.basename(path) or urlparse(source).netloc
    else:
        base = os.path.basename(source)
    return os.path.splitext(base)[0] or "Vocab_Cards"


def pages_for(cards, double_sided=True, config=None):
    """Flatten a card list into the page sequence that gets printed."""
    if double_sided:
        pages = []
        for pair in layout(cards, config):
            pages.append(pair.front)
            pages.append(pair.back)
        return pages
    return layout_side_by_side(cards, config)


class CardEngine:
    def __init__(self, progress_callback=None, canvas_factory=None):
        self.progress_callback = progress_callback
        self.canvas_factory = canvas_factory or canvas.Canvas

    def log(self, message):
        if self.progress_callback:
            self.progress_callback(message)
        else:
            print(message)

    def parse_input(self, input_str, columns=None):
        # One source per line: an http(s) CSV link or a local file path
        lines = [L.strip() for L in input_str.split('\n') if L.strip()]

        results = []
        for line in lines:
            if line.startswith('http'):
                cards = normalize(self.fetch_csv(line), columns)
            elif os.path.exists(line):
                cards = load_csv_file(line, columns)
            else:
                self.log(f"Warning: Skipping {line} (not a URL or an existing file)")
                continue
            self.log(f"Found {len(cards)} cards in {line}.")
            results.append((cards, {'name': source_name(line)}))
        return results

    def parse_batch_file(self, file_path):
        sets_to_process = []
        with open(file_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'): continue

                parts = line.split('|')
                source = parts[0].strip()
                custom_name = parts[1].strip() if len(parts) > 1 else None

                if source:
                    sets_to_process.append({'source': source, 'custom_name': custom_name})
        return sets_to_process

    def fetch_csv(self, url, _retried=False):
        self.log(f"Fetching CSV from {url}...")
        try:
            response = requests.get(url, allow_redirects=True, timeout=FETCH_TIMEOUT_S)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Could not download {url}: {e}") from e
        if response.status_code == 429 and not _retried:
            self.log(f"Rate limited (429). Backing off for {RATE_LIMIT_BACKOFF_S} seconds...")
            time.sleep(RATE_LIMIT_BACKOFF_S)
            return self.fetch_csv(url, _retried=True)
        if response.status_code != 200:
            raise FetchError(f"Failed to fetch {url} (Status {response.status_code})")
        return response.content

    def draw_cell(self, c, cell, page_height, line_color, thickness_mm):
        c.setLineWidth(thickness_mm * mm)
        c.setStrokeColor(HexColor(line_color))
        c.rect(cell.x * inch, (page_height - cell.y - cell.height) * inch, cell.width * inch, cell.height * inch)
        c.setFillColor(HexColor("#000000"))
        for item in cell.texts:
            c.setFont(BOLD_FONT if item.bold else BODY_FONT, item.font_size)
            x = item.x * inch
            y = (page_height - item.y) * inch
            if item.align == "center":
                c.drawCentredString(x, y, item.text)
            else:
                c.drawString(x, y, item.text)

    def render_pdf(self, pages, title="Vocab Cards", config=None, cut_line_color=DEFAULT_CUT_LINE_COLOR,
                   cut_line_thickness=DEFAULT_CUT_LINE_THICKNESS_MM, on_page=None):
        config = config or DEFAULT_LAYOUT
        from reportlab import rl_config
        rl_config.pageCompression = 1
        page_size = (config.page_width * inch, config.page_height * inch)
        grid_left = config.margin_left * inch
        grid_right = (config.page_width - config.margin_left) * inch
        footer_y = FOOTER_BELOW_GRID_IN * inch

        buffer = BytesIO()
        c = self.canvas_factory(buffer, pagesize=page_size)
        c.setTitle(title)
        total_pages = len(pages)
        for page_num, page in enumerate(pages, start=1):
            for cell in page.cells:
                self.draw_cell(c, cell, config.page_height, cut_line_color, cut_line_thickness)
            footer = title + " (Backs)" if page.side == "back" else title
            c.setFillColor(HexColor(cut_line_color))
            c.setFont(FOOTER_FONT, FOOTER_SIZE)
            c.drawString(grid_left, footer_y, footer)
            c.drawRightString(grid_right, footer_y, f"{page_num} / {total_pages}")
            c.showPage()
            if on_page:
                on_page(page_num, total_pages)
        c.save()
        data = buffer.getvalue()
        buffer.close()
        return data

    def build_pdf(self, cards, title="Vocab Cards", double_sided=True, config=None,
                  cut_line_color=DEFAULT_CUT_LINE_COLOR, cut_line_thickness=DEFAULT_CUT_LINE_THICKNESS_MM, on_page=None):
        pages = pages_for(cards, double_sided, config)
        if double_sided:
            self.log(f"Laying out {len(cards)} cards on {expected_pair_count(len(cards))} double-sided sheets...")
        else:
            self.log(f"Laying out {len(cards)} cards, one per page...")
        return self.render_pdf(pages, title, config, cut_line_color, cut_line_thickness, on_page)

    def generate_pdf(self, cards, output_dir, filename_base, footer_text=None, double_sided=True, config=None,
                     cut_line_color=DEFAULT_CUT_LINE_COLOR, cut_line_thickness=DEFAULT_CUT_LINE_THICKNESS_MM, on_page=None):
        if not cards: return None
        output_path = os.path.join(output_dir, f"{filename_base}.pdf")
        final_footer_text = footer_text if footer_text else filename_base.replace('_', ' ')
        self.log(f"Building PDF: {os.path.basename(output_path)}...")
        data = self.build_pdf(cards, final_footer_text, double_sided, config, cut_line_color, cut_line_thickness, on_page)
        with open(output_path, 'wb') as f:
            f.write(data)
        return output_path

    def run_job(self, input_str, output_dir, format_mode="double", columns: ColumnMapping = None, config: LayoutConfig = None,
                cut_line_color=DEFAULT_CUT_LINE_COLOR, cut_line_thickness=DEFAULT_CUT_LINE_THICKNESS_MM, sets=None):
        if format_mode not in FORMAT_MODES:
            raise ValueError(f"Unknown format: {format_mode}")
        self.log(f"Starting job...")
        os.makedirs(output_dir, exist_ok=True)

        # Parsed returns list of (cards, metadata)
        sets_to_process = sets if sets is not None else self.parse_input(input_str, columns)

        if not sets_to_process:
            self.log("No valid card sets found to process.")
            return []

        generated_files = []
        for i, (cards, metadata) in enumerate(sets_to_process):
            resolved_name = metadata.get('name') or f"Set_{i+1}"
            if not cards:
                self.log(f"Warning: No valid cards in {resolved_name}, skipping.")
                continue

            self.log(f"Processing set: {resolved_name}")
            safe_name = resolved_name.replace(' ', '_').replace('/', '_')
            if metadata.get('id'):
                # Sets sharing a title must not overwrite each other's files
                safe_name = f"{safe_name}_{metadata['id']}"
            set_folder = os.path.join(output_dir, safe_name)
            os.makedirs(set_folder, exist_ok=True)
            save_card_list_as_csv(cards, os.path.join(set_folder, "card_list.csv"), columns)

            modes_to_run = []
            if format_mode == 'single': modes_to_run.append(False)
            elif format_mode == 'double': modes_to_run.append(True)
            elif format_mode == 'both': modes_to_run.append(False); modes_to_run.append(True)

            for is_double in modes_to_run:
                suffix = "DoubleSided" if is_double else "SideBySide"
                path = self.generate_pdf(cards, set_folder, f"{safe_name}_{suffix}", resolved_name, is_double, config,
                                         cut_line_color, cut_line_thickness)
                if path: generated_files.append(path)

        self.log(f"Job complete! Generated {len(generated_files)} files.")
        return generated_files

    def get_set_structure(self, cards, title="Vocab Cards", format_mode="double", config=None, column_major=False):
        # Preview data; each page lists its display slots in order, None where empty
        if format_mode not in FORMAT_MODES:
            raise ValueError(f"Unknown format: {format_mode}")
        set_struct = {"name": title, "card_count": len(cards), "batches": []}

        if format_mode in ("double", "both"):
            pages = []
            for pair in layout(cards, config):
                for side in ("front", "back"):
                    order = slot_permutation(side, column_major=column_major)
                    slots = [pair.cards[i].model_dump() if i < len(pair.cards) else None for i in order]
                    pages.append({"type": side, "sheet": pair.batch_number, "display_order": order, "cards": slots})
            set_struct["batches"].append({"label": "Double Sided", "pages": pages})

        if format_mode in ("single", "both"):
            pages = []
            for page in layout_side_by_side(cards, config):
                pages.append({"type": "single", "cards": [page.cells[0].card.model_dump()]})
            set_struct["batches"].append({"label": "Side by Side", "pages": pages})
        return set_struct
