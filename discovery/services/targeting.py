"""
Experiment population targeting.
Controls which users may enter an experiment and the global kill switch.
"""
import hashlib
from typing import Optional

from discovery.config import get_settings
from discovery.models.experiments import Experiment
from discovery.models.interfaces import ExperimentTargeting


class PopulationTargeting(ExperimentTargeting):
    """
    Targeting backed by application settings and the experiment's filters.
    Percentage rollout uses consistent hashing per experiment.
    """

    def is_user_targeted(
        self,
        experiment: Experiment,
        user_id: str,
        is_new_user: Optional[bool] = None,
    ) -> bool:
        """
        Check the kill switch, new/existing-user filters and rollout percentage.

        Unknown user age passes the new/existing filters; hashing keeps the
        same user in or out of a given experiment on every call.
        """
        if self.is_kill_switch_active():
            return False

        if is_new_user is True and not experiment.include_new_users:
            return False
        if is_new_user is False and not experiment.include_existing_users:
            return False

        if experiment.target_user_percentage < 100.0:
            return self.bucket(experiment.id, user_id) < experiment.target_user_percentage

        return True

    def is_kill_switch_active(self) -> bool:
        """Check if experiment assignment is globally disabled."""
        return get_settings().EXPERIMENTS_KILL_SWITCH

    @staticmethod
    def bucket(experiment_id: str, user_id: str) -> int:
        """Stable bucket in [0, 100) from MD5 of experiment and user."""
        digest = hashlib.md5(f"{experiment_id}:{user_id}".encode()).digest()
        return int.from_bytes(digest[:4], byteorder="big") % 100
