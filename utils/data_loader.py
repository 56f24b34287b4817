import json
from typing import List

from models import RescueBoat


def load_fleet(path: str) -> List[RescueBoat]:
    with open(path) as f:
        data = json.load(f)
    boats = []
    for boat in data["boats"]:
        # Boats start the simulation moored at their home base
        home = (boat["home_lat"], boat["home_lon"])
        boats.append(
            RescueBoat(
                boat_id=boat["boat_id"],
                name=boat["name"],
                lat=home[0],
                lon=home[1],
                capacity=boat["capacity"],
                home_base=home,
            )
        )
    return boats


def load_villages(path: str) -> List[str]:
    with open(path) as f:
        data = json.load(f)
    return list(data["villages"])
