"""
Жизненный цикл розыгрыша: участие, выбор победителей, периодическая проверка.
"""

from src.raffles.gate import attempt_join
from src.raffles.selector import select_winners
from src.raffles.sweep import run_sweep, SweepResult

__all__ = ["attempt_join", "select_winners", "run_sweep", "SweepResult"]
