import argparse
import datetime
import os

from tqdm import tqdm

from vocab_card_forge.backend.cards import ColumnMapping, ParseError
from vocab_card_forge.backend.engine import (
    CardEngine, FetchError, FORMAT_MODES, DEFAULT_CUT_LINE_COLOR, DEFAULT_CUT_LINE_THICKNESS_MM,
)
from vocab_card_forge.backend.layout import MAX_LINE_WIDTH, LayoutConfig


def build_columns(args):
    return ColumnMapping(
        word_column=args.word_column,
        pos_column=args.pos_column,
        definition_column=args.definition_column,
        example_column=args.example_column,
    )


def generate_with_progress(engine, cards, output_dir, name, args, config):
    modes_to_run = []
    if args.format == 'single': modes_to_run.append(False)
    elif args.format == 'double': modes_to_run.append(True)
    elif args.format == 'both': modes_to_run.append(False); modes_to_run.append(True)

    paths = []
    safe_name = name.replace(' ', '_').replace('/', '_')
    for is_double in modes_to_run:
        suffix = "DoubleSided" if is_double else "SideBySide"
        with tqdm(desc="Drawing pages", unit="page", leave=False) as pbar:
            def on_page(page_num, total_pages):
                pbar.total = total_pages
                pbar.update(1)
            path = engine.generate_pdf(cards, output_dir, f"{safe_name}_{suffix}", name, is_double, config,
                                       args.cut_line_color, args.cut_line_thickness, on_page)
        if path: paths.append(path)
    return paths


def run_single_mode(args, engine, columns, config):
    sets = engine.parse_input(args.input, columns)
    if not sets:
        print(f"Error: Nothing to process for {args.input}")
        return []
    cards, metadata = sets[0]
    resolved_name = args.setname if args.setname else metadata['name']
    print(f"\nProcessing Set: {resolved_name}")
    print(f"Format: {args.format}")
    if not cards:
        print("No valid cards found (every row is missing a word, part of speech, definition or example).")
        return []

    set_folder = os.path.join(args.output_dir, resolved_name.replace(' ', '_').replace('/', '_'))
    os.makedirs(set_folder, exist_ok=True)
    paths = generate_with_progress(engine, cards, set_folder, resolved_name, args, config)
    print(f"\nDone! Files saved to: {set_folder}")
    return paths


def run_batch_mode(args, engine, columns, config):
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    batch_dir = os.path.join(args.output_dir, f"Batch_{timestamp}")
    os.makedirs(batch_dir, exist_ok=True)

    sets_to_process = engine.parse_batch_file(args.batch_file)
    print(f"Found {len(sets_to_process)} sets in batch file.")

    paths = []
    for entry in tqdm(sets_to_process, desc="Card sets", unit="set"):
        source = entry['source']
        try:
            parsed = engine.parse_input(source, columns)
            if not parsed: continue
            cards, metadata = parsed[0]
            resolved_name = entry['custom_name'] if entry['custom_name'] else metadata['name']
            if not cards:
                print(f"Warning: No valid cards in {source}, skipping.")
                continue
            set_subdir = os.path.join(batch_dir, resolved_name.replace(' ', '_').replace('/', '_'))
            os.makedirs(set_subdir, exist_ok=True)
            paths.extend(generate_with_progress(engine, cards, set_subdir, resolved_name, args, config))
        except (ParseError, FetchError, OSError) as e:
            print(f"Error processing {source}: {e}")

    print(f"\nBatch processing complete! Files saved to: {batch_dir}")
    return paths


def main(argv=None):
    parser = argparse.ArgumentParser(description="Printable vocabulary flashcards from CSV")
    parser.add_argument('--batch_file', help='Text file listing CSV paths or URLs (one per line, optional "|Set Name"). Overrides --input.')
    parser.add_argument('--input', help='CSV file path or CSV URL')
    parser.add_argument('--setname', default=None, help='Set name used for the output folder and page footer.')
    parser.add_argument('--output_dir', default="Output", help='Directory where PDF files will be saved (default: "Output").')
    parser.add_argument('--format', choices=list(FORMAT_MODES), default='double',
                        help='"double" prints fronts and backs on paired pages for duplex printing; '
                             '"single" puts each card\'s front and back side by side on one page.')
    parser.add_argument('--max_line_width', type=int, default=MAX_LINE_WIDTH, help='Characters per line on card backs')
    parser.add_argument('--cut_line_color', default=DEFAULT_CUT_LINE_COLOR)
    parser.add_argument('--cut_line_thickness', type=float, default=DEFAULT_CUT_LINE_THICKNESS_MM, help='Card border thickness in mm')
    parser.add_argument('--word_column', default=ColumnMapping().word_column)
    parser.add_argument('--pos_column', default=ColumnMapping().pos_column)
    parser.add_argument('--definition_column', default=ColumnMapping().definition_column)
    parser.add_argument('--example_column', default=ColumnMapping().example_column)
    args = parser.parse_args(argv)

    try:
        config = LayoutConfig(max_line_width=args.max_line_width).validate_geometry()
    except ValueError as e:
        parser.error(str(e))
    columns = build_columns(args)
    engine = CardEngine(progress_callback=tqdm.write)

    if args.batch_file:
        if not os.path.exists(args.batch_file):
            print(f"Error: Batch file not found at {args.batch_file}")
            return 1
        run_batch_mode(args, engine, columns, config)
    elif args.input:
        try:
            run_single_mode(args, engine, columns, config)
        except (ParseError, FetchError) as e:
            print(f"Error: {e}")
            return 1
    else:
        parser.print_help()
    return 0

if __name__ == '__main__':
    raise SystemExit(main())
