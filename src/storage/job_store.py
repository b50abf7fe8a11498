"""Video job storage backed by a JSON history file"""

import json
import logging
import uuid
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from ..automation.automation_models import VideoJob, now_ms


class JobStore:
    """Persists video generation jobs"""

    def __init__(self, data_dir: str = "./data"):
        self.logger = logging.getLogger("autopilot.storage.jobs")
        self.jobs_dir = Path(data_dir) / "jobs"
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        self.job_file = self.jobs_dir / "jobs.json"

        self.state_lock = Lock()
        self.jobs: Dict[str, VideoJob] = {}
        self._load_jobs()

    def _load_jobs(self) -> None:
        """Load job history from disk"""
        if not self.job_file.exists():
            return
        with open(self.job_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
        self.jobs = {item['id']: VideoJob(**item) for item in data}
        self.logger.info(f"Loaded {len(self.jobs)} jobs from history")

    def _save_jobs(self) -> None:
        with open(self.job_file, 'w', encoding='utf-8') as f:
            json.dump([job.model_dump(mode="json") for job in self.jobs.values()],
                      f, indent=2, ensure_ascii=False)

    def create(self, prompt: str, channel_id: str, channel_name: str,
               idea_text: Optional[str] = None, title: Optional[str] = None) -> VideoJob:
        """Create a queued job"""
        job = VideoJob(
            id=str(uuid.uuid4()),
            prompt=prompt,
            channel_id=channel_id,
            channel_name=channel_name,
            idea_text=idea_text,
            video_title=title,
        )
        with self.state_lock:
            self.jobs[job.id] = job
            self._save_jobs()

        self.logger.info(f"Created job {job.id} for channel {channel_id}")
        return job

    def get(self, job_id: str) -> Optional[VideoJob]:
        with self.state_lock:
            return self.jobs.get(job_id)

    def update(self, job_id: str, changes: Dict[str, Any]) -> Optional[VideoJob]:
        """Apply partial changes to a job; None if it does not exist"""
        with self.state_lock:
            job = self.jobs.get(job_id)
            if job is None:
                return None
            data = job.model_dump()
            data.update(changes)
            data['updated_at'] = now_ms()
            updated = VideoJob(**data)
            self.jobs[job_id] = updated
            self._save_jobs()
            return updated

    def count_active(self, channel_id: str) -> int:
        """Number of jobs for the channel that have not reached a terminal status"""
        with self.state_lock:
            return sum(1 for job in self.jobs.values()
                       if job.channel_id == channel_id and job.is_active)

    def list_all(self) -> List[VideoJob]:
        with self.state_lock:
            return sorted(self.jobs.values(), key=lambda j: j.created_at)

    def list_for_channel(self, channel_id: str) -> List[VideoJob]:
        return [job for job in self.list_all() if job.channel_id == channel_id]
