import pytest

from oceancc.lexer import tokenize
from oceancc.preprocessor import (
    Define,
    PreprocessError,
    Preprocessor,
    locate_include_file,
    main,
    preprocess_file,
    preprocess_source,
)
from oceancc.tokens import TokenType

EXIT_CODE = "int main()\n{\n\treturn 123;\n}\n"
PRECEDENCE = "int main()\n{\n\treturn ((1 + 2 * 3 + 4 * 5 + 6 / 3) * 4 - 2) % 32;\n}\n"
WHILE_LOOP = "int main()\n{\n\tint i = 0;\n\twhile(i < 10)\n\t{\n\t\t++i;\n\t}\n\treturn i;\n}\n"


def _significant(text):
    return [(t.type, t.integer, t.string) for t in tokenize(text) if t.type != TokenType.EOF]


@pytest.mark.parametrize("source", [EXIT_CODE, PRECEDENCE, WHILE_LOOP])
def test_source_without_directives_is_unchanged(source):
    assert preprocess_source(source) == source


def test_object_macro_is_substituted():
    line = "int a = X;\n"
    result = preprocess_source("#define X 5\n" + line)
    assert result == line.replace(" X", " 5")


def test_function_macro_substitutes_arguments():
    result = preprocess_source("#define ADD(a, b) a + b\nADD(1, 2)\n")
    assert _significant(result) == _significant("1 + 2")


def test_function_macro_with_too_few_arguments():
    with pytest.raises(PreprocessError):
        preprocess_source("#define ADD(a, b) a + b\nADD(1)\n")


def test_function_macro_rejects_operator_argument():
    with pytest.raises(PreprocessError, match="expected string, ident or integer"):
        preprocess_source("#define F(a) a\nF(+)\n")


def test_define_records_parameters():
    pre = Preprocessor("#define F(x, y) x\n")
    assert pre.run() == ""
    assert pre.defines["F"].parameters == ("x", "y")
    assert pre.defines["F"].function is True


def test_backslash_continues_define():
    pre = Preprocessor("#define M 1 \\\n + 2\nM\n")
    result = pre.run()
    body = pre.defines["M"].body
    assert "\\" not in body
    assert "+ 2" in body
    assert _significant(result) == _significant("1 + 2")


@pytest.mark.parametrize(
    "defines, visible",
    [({}, False), ({"FOO": Define("FOO")}, True)],
)
def test_ifdef(defines, visible):
    result = preprocess_source("#ifdef FOO\nhidden\n#endif\nshown\n", defines=defines)
    assert "shown" in result
    assert ("hidden" in result) is visible


def test_ifndef_skips_defined_block():
    result = preprocess_source("#define FOO 1\n#ifndef FOO\nhidden\n#endif\nshown\n")
    assert "hidden" not in result
    assert "shown" in result


@pytest.mark.parametrize("value, visible", [("0", False), ("1", True)])
def test_if_integer(value, visible):
    result = preprocess_source(f"#if {value}\nbody\n#endif\n")
    assert ("body" in result) is visible


def test_nested_conditional_in_skipped_block():
    source = "#if 0\n#ifdef X\ninner\n#endif\nouter\n#endif\nafter\n"
    result = preprocess_source(source)
    assert "inner" not in result
    assert "outer" not in result
    assert "after" in result


def test_unmatched_endif():
    with pytest.raises(PreprocessError):
        preprocess_source("#endif\n")


def test_undef_removes_definition_without_touching_caller():
    defines = {"A": Define("A", " 1")}
    pre = Preprocessor("#undef A\nA\n", defines=defines)
    result = pre.run()
    assert "A" not in pre.defines
    assert "A" in defines
    assert "A" in result


def test_define_without_name_is_error():
    with pytest.raises(PreprocessError, match="expected token 'ident'"):
        preprocess_source("#define\n")


def test_define_at_end_of_input_is_error():
    with pytest.raises(PreprocessError, match="unexpected eof"):
        preprocess_source("#define X 1")


def test_invalid_character_is_error():
    with pytest.raises(PreprocessError):
        preprocess_source("int @;\n")


def test_include_quoted_from_source_dir(tmp_path):
    (tmp_path / "header.h").write_text("#define VALUE 7\n")
    line = "int x = VALUE;\n"
    main_file = tmp_path / "main.c"
    main_file.write_text('#include "header.h"\n' + line)
    result = preprocess_file(main_file.as_posix())
    assert result.strip() == line.replace(" VALUE", " 7").strip()


def test_include_angle_from_include_path(tmp_path):
    inc = tmp_path / "inc"
    (inc / "sys").mkdir(parents=True)
    (inc / "sys" / "def.h").write_text("int from_header;\n")
    result = preprocess_source("#include <sys/def.h>\n", include_paths=[inc.as_posix() + "/"])
    assert "int from_header;" in result


def test_header_guard_includes_once(tmp_path):
    (tmp_path / "guard.h").write_text("#ifndef H\n#define H\nint y;\n#endif\n")
    source = '#include "guard.h"\n#include "guard.h"\n'
    pre = Preprocessor(source, source_dir=tmp_path.as_posix() + "/")
    result = pre.run()
    assert result.count("int y;") == 1
    assert "H" in pre.defines


def test_missing_include_is_error(tmp_path):
    with pytest.raises(PreprocessError, match="failed to find include file"):
        preprocess_source('#include "missing.h"\n', source_dir=tmp_path.as_posix() + "/")


def test_locate_include_file_order(tmp_path):
    first = tmp_path / "a"
    second = tmp_path / "b"
    first.mkdir()
    second.mkdir()
    (first / "x.h").write_text("")
    (second / "x.h").write_text("")
    found = locate_include_file(first.as_posix() + "/", "x.h", [second.as_posix() + "/"])
    assert found == first.as_posix() + "/x.h"
    assert locate_include_file("", "nope.h", [second.as_posix() + "/"]) is None


def test_preprocess_file_missing_raises_oserror(tmp_path):
    with pytest.raises(OSError):
        preprocess_file((tmp_path / "none.c").as_posix())


def test_main_prints_result(tmp_path, capsys):
    src = tmp_path / "while.c"
    src.write_text(WHILE_LOOP)
    assert main([src.as_posix()]) == 0
    assert capsys.readouterr().out == WHILE_LOOP + "\n"


def test_main_missing_file(tmp_path, capsys):
    assert main([(tmp_path / "none.c").as_posix()]) == 1
    assert "failed to read file" in capsys.readouterr().out