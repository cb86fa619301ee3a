"""Multi-rate synth: init-rate table, control-rate envelope, audio-rate oscillator.

Demonstrates rate inference and coercion:
  - Init-rate: the wavetable and the envelope breakpoints are fixed once.
  - Control-rate: a linseg envelope updates once per block.
  - Audio-rate: the oscillator runs per sample; its amplitude input is
    control-rate, so an audio-rate LFO feeding it gets a downsamp in front.
"""

from csd_graph import Context, Rate, default_registry, result_to_dot_file

registry = default_registry()
registry.define("oscil", 3, rates=["k", "k", "i"], output_rate="a")
registry.define("linseg", 3, rates=["i", "i", "i"], output_rate="k")

ctx = Context("multirate_synth", registry=registry)

tab = ctx.table(10, [1.0, 0.5, 0.25], size=4096)
env = ctx.call("linseg", 0.0, 0.5, 1.0)
lfo = ctx.call("oscil", 0.1, 5.0, tab)  # audio-rate, coerced where control is required
osc = ctx.call("oscil", env + lfo, 440.0, tab)
sub = ctx.call("oscil", env, 220.0, tab, rate=Rate.CONTROL)

result = ctx.render(osc * 0.8 + ctx.ar(sub) * 0.2)

if __name__ == "__main__":
    print(result.model_dump_json(indent=2))
    dot_path = result_to_dot_file(result, "build")
    print(f"DOT: {dot_path}")
