import pytest

from vocab_card_forge.backend.cards import (
    ColumnMapping, ParseError, append_cards, load_csv_file, normalize, save_card_list_as_csv,
)

HEADER = "Vocab Word,Identifying Part Of Speach,Definition,Example Sentance\n"


def test_normalize_keeps_every_complete_row_in_order():
    raw = (HEADER
           + "cat,noun,a small animal,I have a cat.\n"
           + "run,verb,to move fast,I run daily.\n"
           + "blue,adjective,the colour of the sky,The sky is blue.\n").encode("utf-8")

    cards = normalize(raw)

    assert [c.word for c in cards] == ["cat", "run", "blue"]
    assert [c.display_index for c in cards] == [1, 2, 3]


def test_normalize_drops_incomplete_rows_without_gaps_in_numbering():
    raw = (HEADER
           + "cat,noun,a small animal,I have a cat.\n"
           + ",verb,to run,...\n"
           + "dog,noun,a pet,I walk the dog.\n").encode("utf-8")

    cards = normalize(raw)

    assert len(cards) == 2
    assert (cards[0].word, cards[0].display_index) == ("cat", 1)
    assert (cards[1].word, cards[1].display_index) == ("dog", 2)


def test_normalize_treats_whitespace_only_fields_as_missing_and_trims_values():
    raw = (HEADER
           + "  cat  , noun ,a small animal , I have a cat. \n"
           + "bird,noun,   ,It sings.\n").encode("utf-8")

    cards = normalize(raw)

    assert len(cards) == 1
    card = cards[0]
    assert card.word == "cat"
    assert card.part_of_speech == "noun"
    assert card.definition == "a small animal"
    assert card.example == "I have a cat."


def test_normalize_short_rows_and_blank_lines_are_skipped():
    raw = (HEADER + "\n" + "cat,noun\n" + "dog,noun,a pet,I walk the dog.\n\n").encode("utf-8")

    cards = normalize(raw)

    assert [c.word for c in cards] == ["dog"]
    assert cards[0].display_index == 1


def test_normalize_handles_quoted_commas_newlines_and_bom():
    raw = ("\ufeff" + HEADER + 'set,"verb, noun","to put\nsomewhere","Set it down, please."\n').encode("utf-8")

    cards = normalize(raw)

    assert len(cards) == 1
    assert cards[0].part_of_speech == "verb, noun"
    assert cards[0].definition == "to put\nsomewhere"


def test_normalize_uses_injected_column_mapping_and_ignores_extra_columns():
    columns = ColumnMapping(word_column="Term", pos_column="POS", definition_column="Meaning", example_column="Usage")
    raw = b"Notes,Term,POS,Meaning,Usage\nx,chat,noun,cat,Le chat dort.\n"

    cards = normalize(raw, columns)

    assert cards[0].word == "chat"
    assert cards[0].example == "Le chat dort."


def test_normalize_all_rows_filtered_is_empty_not_an_error():
    raw = (HEADER + ",,,\nword,,,\n").encode("utf-8")

    assert normalize(raw) == []


def test_normalize_missing_columns_is_parse_error():
    raw = b"Vocab Word,Definition\ncat,a small animal\n"

    with pytest.raises(ParseError) as excinfo:
        normalize(raw)

    assert excinfo.value.missing_columns == ("Identifying Part Of Speach", "Example Sentance")
    assert "Missing required columns" in str(excinfo.value)


def test_normalize_rejects_undecodable_bytes():
    with pytest.raises(ParseError):
        normalize(b"\xff\xfe\x00\x00garbage")


def test_normalize_rejects_unterminated_quote():
    raw = (HEADER + 'cat,noun,"a small animal,I have a cat.\n').encode("utf-8")

    with pytest.raises(ParseError):
        normalize(raw)


def test_normalize_rejects_empty_file():
    with pytest.raises(ParseError):
        normalize(b"")


def test_card_records_are_immutable():
    card = normalize((HEADER + "cat,noun,a small animal,I have a cat.\n").encode("utf-8"))[0]

    with pytest.raises(Exception):
        card.word = "dog"


def test_saved_card_list_loads_back_with_same_cards(tmp_path):
    raw = (HEADER + "cat,noun,a small animal,I have a cat.\n,,,\ndog,noun,a pet,I walk the dog.\n").encode("utf-8")
    cards = normalize(raw)
    path = tmp_path / "card_list.csv"

    save_card_list_as_csv(cards, path)

    assert load_csv_file(path) == cards


def test_append_cards_renumbers_and_skips_incomplete_entries():
    existing = normalize((HEADER + "cat,noun,a small animal,I have a cat.\n").encode("utf-8"))

    cards = append_cards(existing, [
        {"word": "", "part_of_speech": "noun", "definition": "nothing", "example": "..."},
        {"word": " owl ", "part_of_speech": "noun", "definition": "a night bird", "example": "The owl hoots."},
        {"word": "fox", "part_of_speech": None, "definition": "a wild dog", "example": "A fox ran."},
    ])

    assert [(c.word, c.display_index) for c in cards] == [("cat", 1), ("owl", 2)]
    assert existing[0].display_index == 1
    assert len(existing) == 1


def test_append_cards_to_empty_list_starts_at_one():
    cards = append_cards([], [{"word": "sun", "part_of_speech": "noun", "definition": "our star", "example": "It shines."}])

    assert cards[0].display_index == 1
