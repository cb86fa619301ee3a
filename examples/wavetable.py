"""Wavetable oscillator: phasor-indexed table read with a guard point."""

from csd_graph import Context, default_registry, result_to_dot_file

registry = default_registry()
registry.define("phasor", 1, rates=["k"], output_rate="a")
# index a, table i -> audio; reads past the end use the guard point
registry.define("tablei", 2, rates=["a", "i"], output_rate="a")

ctx = Context("wavetable", registry=registry)

# Saw-ish table: five harmonics, 1024 points plus a guard point
wt = ctx.table(10, [1.0, 0.5, 0.333, 0.25, 0.2], size=1024, guard=True)
phase = ctx.call("phasor", 440.0)
idx = phase * 1024.0
sample = ctx.call("tablei", idx, wt)

result = ctx.render(sample * 0.5)

if __name__ == "__main__":
    print(result.model_dump_json(indent=2))
    dot_path = result_to_dot_file(result, "build")
    print(f"DOT: {dot_path}")
