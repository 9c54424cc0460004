from fastapi import FastAPI, BackgroundTasks, HTTPException, UploadFile, File, Form
from fastapi.responses import FileResponse, StreamingResponse
from pydantic import BaseModel
from typing import List, Optional
from urllib.parse import quote
import datetime
import uuid
import io
import os

from .cards import ParseError, append_cards, normalize, write_card_csv
from .engine import CardEngine, FetchError, FORMAT_MODES, DEFAULT_CUT_LINE_COLOR, DEFAULT_CUT_LINE_THICKNESS_MM
from .layout import MAX_LINE_WIDTH, LayoutConfig

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
OUTPUT_DIR = os.getenv("VOCAB_CARD_OUTPUT_DIR", os.path.join(os.getcwd(), "Output"))

app = FastAPI(title="Vocab Card Forge")

# In-memory stores
card_sets = {}
jobs = {}


class JobStatus:
    def __init__(self):
        self.status = "pending"
        self.messages = []
        self.progress = 0
        self.result_files = []

    def update(self, message):
        self.messages.append(message)
        # Simple heuristic progress update
        self.progress = min(99, self.progress + 2)

    def complete(self, files):
        self.status = "completed"
        self.progress = 100
        self.result_files = files

    def fail(self, error):
        self.status = "failed"
        self.messages.append(f"Error: {str(error)}")


class CardSet(BaseModel):
    id: str
    title: str
    cards: list
    created_at: str

    def summary(self):
        return {"id": self.id, "title": self.title, "card_count": len(self.cards), "created_at": self.created_at}


class CardEntry(BaseModel):
    word: Optional[str] = None
    part_of_speech: Optional[str] = None
    definition: Optional[str] = None
    example: Optional[str] = None


class CreateSetRequest(BaseModel):
    title: str
    cards: List[CardEntry] = []


class AddCardsRequest(BaseModel):
    cards: List[CardEntry]


class ImportRequest(BaseModel):
    url: str
    title: Optional[str] = None


class GenerateRequest(BaseModel):
    set_id: str
    format: str = "double"
    max_line_width: int = MAX_LINE_WIDTH
    cut_line_color: str = DEFAULT_CUT_LINE_COLOR
    cut_line_thickness: float = DEFAULT_CUT_LINE_THICKNESS_MM


def get_card_set(set_id) -> CardSet:
    if set_id not in card_sets:
        raise HTTPException(status_code=404, detail="Card set not found")
    return card_sets[set_id]


def require_cards(card_set):
    if not card_set.cards:
        raise HTTPException(status_code=400, detail="Card set has no cards")


def check_format(format_mode):
    if format_mode not in FORMAT_MODES:
        raise HTTPException(status_code=400, detail=f"Unknown format '{format_mode}'. Use one of: {', '.join(FORMAT_MODES)}")


def layout_config(max_line_width=MAX_LINE_WIDTH):
    try:
        return LayoutConfig(max_line_width=max_line_width).validate_geometry()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def attachment_headers(filename):
    """Content-Disposition for any title: ASCII fallback plus RFC 5987 UTF-8 name."""
    fallback = filename.encode("ascii", "ignore").decode("ascii")
    fallback = "".join(ch for ch in fallback if ch not in '";\\') or "download"
    return {"Content-Disposition": f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"}


def export_name(card_set, extension):
    return f"{card_set.title.replace(' ', '_').replace('/', '_')}.{extension}"


def store_card_set(title, cards):
    card_set = CardSet(
        id=str(uuid.uuid4()),
        title=title,
        cards=cards,
        created_at=datetime.datetime.now(datetime.timezone.utc).isoformat(),
    )
    card_sets[card_set.id] = card_set
    return card_set


def create_card_set(raw_csv, title):
    try:
        cards = normalize(raw_csv)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not cards:
        raise HTTPException(status_code=400, detail="No valid data found in CSV file")
    return store_card_set(title, cards)


def run_engine_task(job_id: str, request: GenerateRequest):
    job = jobs[job_id]
    job.status = "running"

    def callback(msg):
        job.update(msg)

    engine = CardEngine(progress_callback=callback)
    card_set = card_sets[request.set_id]

    try:
        files = engine.run_job(
            input_str="",
            output_dir=OUTPUT_DIR,
            format_mode=request.format,
            config=LayoutConfig(max_line_width=request.max_line_width),
            cut_line_color=request.cut_line_color,
            cut_line_thickness=request.cut_line_thickness,
            sets=[(card_set.cards, {'name': card_set.title, 'id': card_set.id})],
        )
        job.complete(files)
    except Exception as e:
        job.fail(e)


@app.post("/api/sets", status_code=201)
async def create_set(request: CreateSetRequest):
    title = request.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    card_set = store_card_set(title, append_cards([], [c.model_dump() for c in request.cards]))
    return card_set.summary()


@app.post("/api/sets/upload", status_code=201)
async def upload_card_set(file: UploadFile = File(...), title: Optional[str] = Form(None)):
    filename = file.filename or ""
    if not filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Invalid file type. Only CSV files are allowed.")
    raw = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(raw) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File size exceeds 5MB limit.")
    card_set = create_card_set(raw, title or os.path.splitext(filename)[0])
    return card_set.summary()


@app.post("/api/sets/import", status_code=201)
async def import_card_set(request: ImportRequest):
    engine = CardEngine(progress_callback=lambda _msg: None)
    try:
        raw = engine.fetch_csv(request.url)
    except FetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if len(raw) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File size exceeds 5MB limit.")
    card_set = create_card_set(raw, request.title or "Imported_Cards")
    return card_set.summary()


@app.get("/api/sets")
async def list_card_sets():
    return {"sets": [s.summary() for s in card_sets.values()]}


@app.get("/api/sets/{set_id}")
async def get_set(set_id: str):
    card_set = get_card_set(set_id)
    return {**card_set.summary(), "cards": [c.model_dump() for c in card_set.cards]}


@app.post("/api/sets/{set_id}/cards", status_code=201)
async def add_cards(set_id: str, request: AddCardsRequest):
    card_set = get_card_set(set_id)
    cards = append_cards(card_set.cards, [c.model_dump() for c in request.cards])
    added = len(cards) - len(card_set.cards)
    if not added:
        raise HTTPException(status_code=400, detail="No complete cards to add; each needs a word, part of speech, definition and example")
    card_set.cards = cards
    return {**card_set.summary(), "added": added, "cards": [c.model_dump() for c in cards]}


@app.get("/api/sets/{set_id}/csv")
def download_set_csv(set_id: str):
    card_set = get_card_set(set_id)
    buffer = io.StringIO()
    write_card_csv(card_set.cards, buffer)
    return StreamingResponse(iter([buffer.getvalue()]), media_type="text/csv; charset=utf-8",
                             headers=attachment_headers(export_name(card_set, "csv")))


@app.get("/api/sets/{set_id}/preview")
def preview_set(set_id: str, format: str = "double", max_line_width: int = MAX_LINE_WIDTH, column_major: bool = False):
    card_set = get_card_set(set_id)
    check_format(format)
    engine = CardEngine(progress_callback=lambda _msg: None)
    return engine.get_set_structure(card_set.cards, card_set.title, format, layout_config(max_line_width), column_major)


@app.get("/api/sets/{set_id}/pdf")
def download_set_pdf(set_id: str, format: str = "double", max_line_width: int = MAX_LINE_WIDTH):
    card_set = get_card_set(set_id)
    if format not in ("double", "single"):
        raise HTTPException(status_code=400, detail="Format must be 'double' or 'single' for a direct download")
    require_cards(card_set)
    engine = CardEngine(progress_callback=lambda _msg: None)
    data = engine.build_pdf(card_set.cards, card_set.title, format == "double", layout_config(max_line_width))
    return StreamingResponse(iter([data]), media_type="application/pdf",
                             headers=attachment_headers(export_name(card_set, "pdf")))


@app.post("/api/generate")
async def generate_cards(request: GenerateRequest, background_tasks: BackgroundTasks):
    require_cards(get_card_set(request.set_id))
    check_format(request.format)
    layout_config(request.max_line_width)
    job_id = str(uuid.uuid4())
    jobs[job_id] = JobStatus()
    background_tasks.add_task(run_engine_task, job_id, request)
    return {"job_id": job_id}


@app.get("/api/status/{job_id}")
async def get_status(job_id: str):
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job not found")
    job = jobs[job_id]
    return {
        "status": job.status,
        "progress": job.progress,
        "messages": job.messages,
        "files": [os.path.basename(f) for f in job.result_files] if job.result_files else []
    }


@app.get("/api/download/{filename}")
async def download_file(filename: str):
    if os.path.basename(filename) != filename:
        raise HTTPException(status_code=404, detail="File not found")
    # Walk to find file
    for root, dirs, files in os.walk(OUTPUT_DIR):
        if filename in files:
            return FileResponse(os.path.join(root, filename), filename=filename)
    raise HTTPException(status_code=404, detail="File not found")
