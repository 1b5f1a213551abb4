"""
Models / player.py
Rôle:
- Définir la structure d'un joueur connecté (modèle Pydantic).

Champs:
- id: identifiant opaque unique du joueur (une socket = une identité).
- name: nom d'affichage attribué selon l'ordre d'arrivée.
- color: couleur de la palette, cyclée selon l'ordre d'arrivée.
- score: nombre de mots trouvés (ne décroît jamais pendant la session).
"""
from pydantic import BaseModel, Field

PLAYER_COLORS = [
    "#FF6B6B",  # coral red
    "#4ECDC4",  # teal
    "#FFE66D",  # sunny yellow
    "#95E1D3",  # mint
    "#F38181",  # salmon
    "#AA96DA",  # lavender
    "#FCBAD3",  # pink
    "#A8D8EA",  # sky blue
]

_ADJECTIVES = ["Happy", "Sleepy", "Bouncy", "Fuzzy", "Cozy", "Silly", "Jolly", "Wiggly"]
_ANIMALS = ["Bunny", "Kitten", "Puppy", "Panda", "Koala", "Otter", "Penguin", "Hamster"]


def player_name(index: int) -> str:
    return f"{_ADJECTIVES[index % len(_ADJECTIVES)]} {_ANIMALS[index % len(_ANIMALS)]}"


def player_color(index: int) -> str:
    return PLAYER_COLORS[index % len(PLAYER_COLORS)]


class Player(BaseModel):
    """Profil joueur pour sérialisation WS."""
    id: str
    name: str
    color: str
    score: int = Field(default=0, ge=0)
