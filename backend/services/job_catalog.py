"""
Static job posting catalog.
Postings are loaded once at import time and never mutated at runtime.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from core.exceptions import JobNotFoundError
from models.candidate import (
    EmploymentType,
    ExperienceRange,
    JobPosting,
    SalaryRange,
)

logger = logging.getLogger(__name__)

_POSTED = datetime(2024, 1, 15)


SENIOR_SOFTWARE_ENGINEER = JobPosting(
    id="se-2024-001",
    title="Senior Software Engineer",
    company="TechFlow Solutions",
    location="San Francisco, CA (Hybrid)",
    employment_type=EmploymentType.FULL_TIME,
    requirements=[
        "Bachelor's degree in Computer Science, Engineering, or related field",
        "5+ years of experience in software development",
        "Strong proficiency in JavaScript/TypeScript, React, and Node.js",
        "Experience with cloud platforms (AWS, Azure, or GCP)",
        "Knowledge of database design and SQL",
        "Experience with microservices architecture",
        "Familiarity with CI/CD pipelines and DevOps practices",
        "Strong problem-solving and analytical skills",
        "Excellent communication and teamwork abilities",
        "Experience with Agile/Scrum methodologies",
    ],
    responsibilities=[
        "Design, develop, and maintain scalable web applications",
        "Collaborate with cross-functional teams to define and implement new features",
        "Write clean, maintainable, and well-documented code",
        "Participate in code reviews and provide constructive feedback",
        "Troubleshoot and debug complex technical issues",
        "Optimize application performance and user experience",
        "Mentor junior developers and share best practices",
        "Contribute to technical architecture decisions",
    ],
    benefits=[
        "Competitive salary: $120,000 - $160,000 annually",
        "Comprehensive health, dental, and vision insurance",
        "401(k) matching up to 6%",
        "Flexible work arrangements (hybrid/remote options)",
        "Unlimited paid time off",
        "Professional development budget ($3,000/year)",
        "Stock options and equity participation",
    ],
    skills=[
        "JavaScript", "TypeScript", "React", "Node.js", "Python", "AWS",
        "Docker", "Kubernetes", "PostgreSQL", "MongoDB", "GraphQL",
        "REST API", "Git", "CI/CD", "Microservices",
    ],
    salary=SalaryRange(min=120000, max=160000, currency="USD"),
    experience=ExperienceRange(min=5, max=8, unit="years"),
    department="Engineering",
    remote=True,
    created_at=_POSTED,
    updated_at=_POSTED,
)

FRONTEND_DEVELOPER = JobPosting(
    id="fe-2024-002",
    title="Frontend Developer",
    company="TechFlow Solutions",
    location="Remote",
    employment_type=EmploymentType.FULL_TIME,
    requirements=[
        "3+ years of frontend development experience",
        "Strong proficiency in React, Vue.js, or Angular",
        "Experience with modern CSS frameworks",
        "Knowledge of responsive design principles",
    ],
    responsibilities=[
        "Build accessible, responsive user interfaces",
        "Work with designers to turn mockups into components",
        "Own frontend performance and testing",
    ],
    skills=["JavaScript", "TypeScript", "React", "Vue.js", "Angular"],
    salary=SalaryRange(min=80000, max=110000, currency="USD"),
    experience=ExperienceRange(min=3, max=6, unit="years"),
    department="Engineering",
    remote=True,
    created_at=_POSTED,
    updated_at=_POSTED,
)

BACKEND_DEVELOPER = JobPosting(
    id="be-2024-003",
    title="Backend Developer",
    company="TechFlow Solutions",
    location="New York, NY",
    employment_type=EmploymentType.FULL_TIME,
    requirements=[
        "4+ years of backend development experience",
        "Strong proficiency in Python, Java, or Go",
        "Experience with database design and optimization",
        "Knowledge of API design and microservices",
    ],
    responsibilities=[
        "Design and operate backend services and APIs",
        "Model and tune relational and document databases",
        "Take part in on-call rotation for owned services",
    ],
    skills=["Python", "Java", "Go", "PostgreSQL", "REST API", "Microservices"],
    salary=SalaryRange(min=100000, max=140000, currency="USD"),
    experience=ExperienceRange(min=4, max=7, unit="years"),
    department="Engineering",
    remote=False,
    created_at=_POSTED,
    updated_at=_POSTED,
)


class JobCatalog:
    """Read-only lookup of job postings by id"""

    def __init__(self, postings: Iterable[JobPosting], default_id: Optional[str] = None):
        self._postings: Dict[str, JobPosting] = {p.id: p for p in postings}
        if not self._postings:
            raise ValueError("JobCatalog needs at least one posting")
        self._default_id = default_id if default_id in self._postings else next(iter(self._postings))

    def get(self, job_id: str) -> JobPosting:
        posting = self._postings.get(job_id)
        if posting is None:
            raise JobNotFoundError(job_id)
        return posting

    def find(self, job_id: str) -> Optional[JobPosting]:
        return self._postings.get(job_id)

    def default(self) -> JobPosting:
        return self._postings[self._default_id]

    def list(self) -> List[JobPosting]:
        return list(self._postings.values())

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._postings

    def __len__(self) -> int:
        return len(self._postings)


def build_default_catalog(default_id: Optional[str] = None) -> JobCatalog:
    return JobCatalog(
        [SENIOR_SOFTWARE_ENGINEER, FRONTEND_DEVELOPER, BACKEND_DEVELOPER],
        default_id=default_id,
    )
