import io

import pytest

from sysycc.cfg import BasicBlock, Function, Unit
from sysycc.operand import Operand
from sysycc.symbols import IdentifierSymbolEntry, Scope
from sysycc.typesys import INT_TYPE, VOID_TYPE, FunctionType


class _Line:
    def __init__(self, text):
        self.text = text
        self.parent = None

    def output(self, out):
        out.write(f"  {self.text}\n")


def _func(unit=None, name="main", ret=INT_TYPE):
    unit = unit if unit is not None else Unit()
    sym = IdentifierSymbolEntry(FunctionType(ret, []), name, Scope.GLOBAL)
    return Function(unit, sym)


def test_function_registers_in_unit_with_entry():
    unit = Unit()
    f = _func(unit)
    assert unit.funcs == [f]
    assert f.blocks == [f.entry]
    assert f.entry.parent is f


def test_block_numbers_increase():
    f = _func()
    b1 = BasicBlock(f)
    b2 = BasicBlock(f)
    assert f.entry.no < b1.no < b2.no
    assert f.blocks == [f.entry, b1, b2]


def test_insert_order_and_parent():
    f = _func()
    bb = f.entry
    a, b, c = _Line("a"), _Line("b"), _Line("c")
    bb.insert_back(b)
    bb.insert_front(a)
    bb.insert_back(c)
    assert bb.instructions == [a, b, c]
    assert a.parent is bb and c.parent is bb
    assert bb.first is a
    assert bb.last is c


def test_insert_before_and_remove():
    f = _func()
    bb = f.entry
    a, c = _Line("a"), _Line("c")
    bb.insert_back(a)
    bb.insert_back(c)
    b = _Line("b")
    bb.insert_before(b, c)
    assert bb.instructions == [a, b, c]
    bb.remove(b)
    assert bb.instructions == [a, c]
    assert len(bb) == 2


def test_insert_before_unknown_raises():
    bb = _func().entry
    with pytest.raises(ValueError):
        bb.insert_before(_Line("x"), _Line("y"))


def test_remove_while_iterating():
    bb = _func().entry
    items = [_Line(str(i)) for i in range(4)]
    for item in items:
        bb.insert_back(item)
    for inst in bb:
        if inst.text in ("1", "2"):
            bb.remove(inst)
    assert bb.instructions == [items[0], items[3]]


def test_empty_block():
    bb = _func().entry
    assert bb.empty
    assert bb.first is None and bb.last is None
    bb.insert_back(_Line("x"))
    assert not bb.empty


def test_pred_succ_edges():
    f = _func()
    a, b = f.entry, BasicBlock(f)
    a.add_succ(b)
    b.add_pred(a)
    assert a.succs == [b] and b.preds == [a]
    a.remove_succ(b)
    b.remove_pred(a)
    assert a.succs == [] and b.preds == []


def test_remove_block_from_function():
    f = _func()
    b = BasicBlock(f)
    f.remove(b)
    assert f.blocks == [f.entry]
    with pytest.raises(ValueError):
        f.remove(b)


def test_empty_block_writes_nothing():
    out = io.StringIO()
    _func().entry.output(out)
    assert out.getvalue() == ""


def test_block_output_with_preds():
    f = _func()
    p1, p2, bb = BasicBlock(f), BasicBlock(f), BasicBlock(f)
    bb.add_pred(p1)
    bb.add_pred(p2)
    bb.insert_back(_Line("ret"))
    out = io.StringIO()
    bb.output(out)
    header = f"B{bb.no}:" + " " * 31 + f"\t; preds = %B{p1.no}, %B{p2.no}\n"
    assert out.getvalue() == header + "  ret\n"


def test_function_output_bfs_skips_unreachable():
    f = _func()
    entry = f.entry
    nxt = BasicBlock(f)
    dead = BasicBlock(f)
    entry.insert_back(_Line("br"))
    nxt.insert_back(_Line("ret"))
    dead.insert_back(_Line("dead"))
    entry.add_succ(nxt)
    nxt.add_pred(entry)
    out = io.StringIO()
    f.output(out)
    text = out.getvalue()
    assert text.startswith("define i32 @main(){\n")
    assert text.endswith("}\n")
    assert "dead" not in text
    assert text.index(f"B{entry.no}:") < text.index(f"B{nxt.no}:")


def test_function_output_params():
    f = _func(ret=VOID_TYPE, name="f")
    for name in ("a", "b"):
        f.params.append(Operand(IdentifierSymbolEntry(INT_TYPE, name, Scope.PARAM)))
    out = io.StringIO()
    f.output(out)
    assert out.getvalue() == "define void @f(i32 a,i32 b){\n}\n"


def test_unit_output_and_remove():
    unit = Unit()
    f = _func(unit, "f", VOID_TYPE)
    g = _func(unit, "g", VOID_TYPE)
    out = io.StringIO()
    unit.output(out)
    assert out.getvalue() == "define void @f(){\n}\ndefine void @g(){\n}\n"
    unit.remove_func(f)
    assert list(unit) == [g]
    with pytest.raises(ValueError):
        unit.remove_func(f)