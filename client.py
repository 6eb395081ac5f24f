import requests
from typing import Optional


class TimerClient:
    """Simple REST client for the rest timer API."""

    def __init__(self, base_url: str = "http://localhost:8000", session=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def _post(self, path: str, **params):
        resp = self.session.post(f"{self.base_url}{path}", params=params)
        resp.raise_for_status()
        return resp.json()

    def _get(self, path: str, **params):
        resp = self.session.get(f"{self.base_url}{path}", params=params)
        resp.raise_for_status()
        return resp.json()

    def timer(self) -> dict:
        return self._get("/timer")

    def start_timer(
        self,
        duration: Optional[int] = None,
        exercise_id: Optional[int] = None,
        set_id: Optional[int] = None,
    ) -> dict:
        params = {
            k: v
            for k, v in {
                "duration": duration,
                "exercise_id": exercise_id,
                "set_id": set_id,
            }.items()
            if v is not None
        }
        return self._post("/timer/start", **params)

    def pause_timer(self) -> dict:
        return self._post("/timer/pause")

    def resume_timer(self) -> dict:
        return self._post("/timer/resume")

    def stop_timer(self) -> dict:
        return self._post("/timer/stop")

    def add_time(self, seconds: int) -> dict:
        return self._post("/timer/add_time", seconds=seconds)

    def presets(self) -> list:
        return self._get("/timer_presets")

    def create_drills(self, drills: list[dict]) -> dict:
        resp = self.session.post(f"{self.base_url}/drills", json=drills)
        resp.raise_for_status()
        return resp.json()

    def drills(self) -> dict:
        return self._get("/drills")

    def drill_command(self, command: str) -> dict:
        if command == "exit":
            return self._post("/drills/exit", confirm="true")
        return self._post(f"/drills/{command}")

    def create_workout(self, date: str, name: Optional[str] = None) -> int:
        params = {"date": date}
        if name is not None:
            params["name"] = name
        return self._post("/workouts", **params)["id"]

    def add_exercise(self, workout_id: int, name: str, category: str = "strength") -> int:
        return self._post(
            f"/workouts/{workout_id}/exercises", name=name, category=category
        )["id"]

    def add_set(self, exercise_id: int) -> int:
        return self._post(f"/exercises/{exercise_id}/sets")["id"]

    def complete_set(
        self, exercise_id: int, set_id: int, reps: int, weight: float
    ) -> dict:
        return self._post(
            f"/sets/{set_id}/complete",
            exercise_id=exercise_id,
            reps=reps,
            weight=weight,
        )
