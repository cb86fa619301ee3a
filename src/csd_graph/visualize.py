"""Graphviz DOT visualization for rendered instruction lists."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

from csd_graph.models import (
    Constant,
    EffectClass,
    Instruction,
    InstructionRef,
    Rate,
    RenderResult,
)

_RATE_COLORS: dict[Rate, str] = {
    Rate.AUDIO: "#e2d5f1",
    Rate.CONTROL: "#fff3cd",
    Rate.INIT: "#e9ecef",
}


def _literal(c: Constant) -> str:
    if isinstance(c.value, str):
        return f'\\"{c.value}\\"'
    return f"{c.value:g}"


def _node_attrs(ins: Instruction) -> tuple[str, str, str]:
    """Return (shape, fillcolor, label) for an instruction."""
    literals = [_literal(a) for a in ins.args if isinstance(a, Constant)]
    detail = f"({', '.join(literals)})" if literals else ""
    label = f"{ins.id}:{ins.rate.token}\\n{ins.op}{detail}"
    if ins.op == "ftgen":
        return "box3d", _RATE_COLORS[Rate.INIT], label
    if ins.effect is EffectClass.EFFECTFUL:
        return "box", "#fde0c8", f"{label}\\n#{ins.token}"
    return "box", _RATE_COLORS[ins.rate], label


def result_to_dot(result: RenderResult) -> str:
    """Convert a rendered instruction list to a Graphviz DOT string.

    Data edges are solid; the effect order is drawn as dashed edges
    between consecutive effectful instructions.
    """
    lines: list[str] = []
    w = lines.append

    w(f'digraph "{result.name}" {{')
    w("    rankdir=LR;")
    w('    node [fontname="Helvetica" fontsize=10];')
    w("")

    for ins in result.instructions:
        shape, color, label = _node_attrs(ins)
        w(f'    "{ins.id}" [shape={shape} style=filled fillcolor="{color}" label="{label}"];')

    for idx, _ in enumerate(result.outputs):
        w(
            f'    "out{idx}" [shape=box style="rounded,filled"'
            f' fillcolor="#f8d7da" label="out{idx}"];'
        )

    w("")

    for ins in result.instructions:
        for arg in ins.args:
            if isinstance(arg, InstructionRef):
                w(f'    "{arg.ref}" -> "{ins.id}";')

    effectful = [ins for ins in result.instructions if ins.effect is EffectClass.EFFECTFUL]
    for before, after in zip(effectful, effectful[1:]):
        w(f'    "{before.id}" -> "{after.id}" [style=dashed color="#999999"];')

    for idx, args in enumerate(result.outputs):
        for arg in args:
            if isinstance(arg, InstructionRef):
                w(f'    "{arg.ref}" -> "out{idx}";')

    w("}")
    return "\n".join(lines) + "\n"


def result_to_dot_file(result: RenderResult, output_dir: str | Path) -> Path:
    """Write a DOT file for the result to output_dir/{name}.dot.

    If the ``dot`` binary is on PATH, also renders a PDF to
    ``output_dir/{name}.pdf``.

    Returns the path to the written ``.dot`` file.
    """
    dot_src = result_to_dot(result)
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    dot_path = out / f"{result.name}.dot"
    dot_path.write_text(dot_src)

    dot_bin = shutil.which("dot")
    if dot_bin is not None:
        pdf_path = out / f"{result.name}.pdf"
        subprocess.run(
            [dot_bin, "-Tpdf", str(dot_path), "-o", str(pdf_path)],
            check=True,
        )

    return dot_path
