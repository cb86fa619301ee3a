"""Stereo gain: one mono source panned to a tuple and scaled per channel."""

from csd_graph import Context, default_registry, result_to_dot_file

registry = default_registry()
registry.define("oscil", 3, rates=["k", "k", "i"], output_rate="a")
registry.define("pan2", 2, rates=["a", "k"], outputs=2, output_rate="a")

ctx = Context("stereo_gain", registry=registry)

tab = ctx.table(10, [1.0], size=4096)
mono = ctx.call("oscil", 0.5, 220.0, tab)
stereo = ctx.call("pan2", mono, 0.3)
# Scalar broadcast over the pair, then a per-channel trim
scaled = stereo * ctx.kr(ctx.const(0.8)) * ctx.tuple(1.0, 0.9)

result = ctx.render(scaled)

if __name__ == "__main__":
    print(result.model_dump_json(indent=2))
    dot_path = result_to_dot_file(result, "build")
    print(f"DOT: {dot_path}")
