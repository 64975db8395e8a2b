from storyforge import create_app


def test_kb_stats(corpus_file):
    runner = create_app().test_cli_runner()
    result = runner.invoke(args=["kb-stats", "--corpus", str(corpus_file)])
    assert result.exit_code == 0
    assert "Total Stories: 2" in result.output
    assert "Query: 'revenge wedding sister'" in result.output


def test_kb_stats_missing_corpus(tmp_path):
    runner = create_app().test_cli_runner()
    result = runner.invoke(args=["kb-stats", "--corpus", str(tmp_path / "missing.txt")])
    assert result.exit_code != 0
    assert "not found" in result.output


def test_kb_context(monkeypatch, corpus_file):
    monkeypatch.setenv("KNOWLEDGE_BASE_PATH", str(corpus_file))
    runner = create_app().test_cli_runner()
    result = runner.invoke(args=["kb-context", "sister wedding dress"])
    assert result.exit_code == 0
    assert "A sister stole a wedding dress and wore it." in result.output


def test_kb_stats_bad_chunk_settings(monkeypatch, corpus_file):
    monkeypatch.setenv("KNOWLEDGE_BASE_CHUNK_WORDS", "many")
    runner = create_app().test_cli_runner()
    result = runner.invoke(args=["kb-stats", "--corpus", str(corpus_file)])
    assert result.exit_code != 0
    assert "KNOWLEDGE_BASE_CHUNK_WORDS must be an integer" in result.output
