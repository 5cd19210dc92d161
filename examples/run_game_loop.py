import logging
import random
from typing import List, Tuple

from kaibrain import BoardState, GameMaster

WIDTH = 20
HEIGHT = 20
TICK_MS = 120
STEPS = {"UP": (0, -1), "DOWN": (0, 1), "LEFT": (-1, 0), "RIGHT": (1, 0)}
OPPOSITE = {"UP": "DOWN", "DOWN": "UP", "LEFT": "RIGHT", "RIGHT": "LEFT"}


class SimClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _choose(rng: random.Random, head, objective, heading: str) -> str:
    # Simulated player: mostly chases the objective, sometimes wanders
    options = [d for d in STEPS if d != OPPOSITE[heading]]
    if rng.random() < 0.2:
        return rng.choice(options)
    dx = objective[0] - head[0]
    dy = objective[1] - head[1]
    want = ("RIGHT" if dx > 0 else "LEFT") if abs(dx) >= abs(dy) else ("DOWN" if dy > 0 else "UP")
    return want if want in options else heading


def play_session(master: GameMaster, clock: SimClock, rng: random.Random, max_ticks: int = 400) -> Tuple[int, str]:
    snap = master.on_session_start()
    for e in snap.commentary_events:
        print(e.message)
    body: List[Tuple[int, int]] = [(WIDTH // 2, HEIGHT // 2)]
    objective = (rng.randrange(WIDTH), rng.randrange(HEIGHT))
    heading = "RIGHT"
    cause = None
    for _ in range(max_ticks):
        clock.now += TICK_MS
        heading = _choose(rng, body[0], objective, heading)
        dx, dy = STEPS[heading]
        head = (body[0][0] + dx, body[0][1] + dy)
        obstacles = {o.position for o in master.current_snapshot().obstacles}
        if not (0 <= head[0] < WIDTH and 0 <= head[1] < HEIGHT):
            cause = "wall"
            break
        if head in body:
            cause = "self"
            break
        if head in obstacles:
            cause = "obstacle"
            break
        body.insert(0, head)
        if head == objective:
            master.on_objective_consumed()
            default = (rng.randrange(WIDTH), rng.randrange(HEIGHT))
            objective = master.place_objective(body, WIDTH, HEIGHT, default)
        else:
            body.pop()
        master.on_move(heading, head, len(body), objective, WIDTH, HEIGHT)
        result = master.on_tick(BoardState(tuple(body), objective, WIDTH, HEIGHT))
        for e in result.commentary_events:
            print(f"[{e.priority.value}] {e.message}")
        if result.snapshot.has_won:
            break
    score = (len(body) - 1) * 10
    end = master.on_session_end(score, cause)
    pm = end.post_mortem
    if pm is not None:
        print(pm.cause_description)
        print(pm.score_note)
    return score, cause or "none"


def main():
    logging.basicConfig(level=logging.INFO)
    clock = SimClock()
    rng = random.Random(7)
    master = GameMaster(random_seed=7, clock=clock)
    for i in range(5):
        score, cause = play_session(master, clock, rng)
        print(f"Session {i+1}: score={score} cause={cause} archetype={master.archetype.value}")
    master.close()


if __name__ == "__main__":
    main()
