from mantleconv.runtime.history import ITERATION_COLUMNS, ColumnarBuffer, RunHistory


def test_columnar_buffer_basic():
    buf = ColumnarBuffer()
    buf.append_row({"a": 1})
    buf.append_row({"b": 2})
    assert buf.row_count == 2
    table = buf.to_table(ensure_columns=["a", "b", "c"])
    assert table.column_names[:3] == ["a", "b", "c"]
    assert table.num_rows == 2
    assert table.column("c").to_pylist() == [None, None]
    assert buf.column("a") == [1, None]
    assert buf.last() == {"a": None, "b": 2}
    buf.clear()
    assert len(buf) == 0
    assert buf.last() is None


def test_run_history_table_has_iteration_columns():
    history = RunHistory()
    history.iterations.append_row({"it": 1, "t": 2.0, "dt": 2.0, "stokes_err": 1e-5})
    table = history.to_table()
    assert table.column_names[: len(ITERATION_COLUMNS)] == list(ITERATION_COLUMNS)
    assert table.column("thermal_err").to_pylist() == [None]
    assert history.iterations.to_records()[0]["it"] == 1
