"""Random walk: a mutable cell nudged by two independent random draws.

Both draws have identical parameters but stay separate instructions, and
the cell's allocate / read / write order is kept in the rendered output.
"""

from csd_graph import Context, result_to_dot_file

ctx = Context("random_walk")

pitch = ctx.new_ref(440.0)
step_up = ctx.random(0.0, 10.0)
step_down = ctx.random(0.0, 10.0)
ctx.modify_ref(pitch, lambda p: p + step_up.value - step_down.value)
current = ctx.read_ref(pitch)

result = ctx.render(current)

if __name__ == "__main__":
    print(result.model_dump_json(indent=2))
    dot_path = result_to_dot_file(result, "build")
    print(f"DOT: {dot_path}")
