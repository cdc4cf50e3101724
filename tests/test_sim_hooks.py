import logging

from smoke3d.common.sim_hooks import SimHooks


def test_hooks_receive_sim_and_frame():
    seen = []
    hooks = SimHooks(pre=lambda sim, f: seen.append(("pre", sim, f)),
                     post=lambda sim, f: seen.append(("post", sim, f)))
    hooks.run_pre("sim", 4)
    hooks.run_post("sim", 4)
    assert seen == [("pre", "sim", 4), ("post", "sim", 4)]


def test_failing_hook_is_logged_not_raised(caplog):
    def bad(sim, frame):
        raise RuntimeError("hook exploded")

    hooks = SimHooks(pre=bad, post=bad)
    with caplog.at_level(logging.ERROR, logger="smoke3d.common.sim_hooks"):
        hooks.run_pre(None, 2)
        hooks.run_post(None, 3)
    messages = [r.getMessage() for r in caplog.records]
    assert "pre-frame hook failed at frame 2" in messages
    assert "post-frame hook failed at frame 3" in messages
    assert all(r.exc_info is not None for r in caplog.records)


def test_missing_hooks_are_noops():
    SimHooks().run_pre(None, 0)
    SimHooks().run_post(None, 0)
