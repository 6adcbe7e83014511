from tokenizer import split_lines, tokenize


def test_split_trim_drop_empty():
    assert split_lines("  a \n\n b\r\n\t\n") == ["a", "b"]


def test_empty_input():
    assert split_lines("") == []
    assert split_lines(None) == []
    assert split_lines("   \n\t\n") == []


def test_order_preserved_and_no_blank_entries():
    raw = "third\n  first \n\nsecond"
    lines = split_lines(raw)
    assert lines == ["third", "first", "second"]
    assert all(ln and ln == ln.strip() for ln in lines)


def test_tokenize_keeps_raw_text_and_confidence():
    tokens = tokenize("A\nB\n", confidence=91.5)
    assert tokens.lines == ("A", "B")
    assert tokens.raw_text == "A\nB\n"
    assert tokens.confidence == 91.5
    assert len(tokens) == 2


def test_tokenize_without_confidence():
    tokens = tokenize("")
    assert tokens.lines == ()
    assert tokens.confidence is None
