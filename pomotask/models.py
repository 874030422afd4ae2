from sqlalchemy import Boolean, Column, Date, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    completed = Column(Boolean, nullable=False, default=False)
    priority = Column(String, nullable=False, default="Medium")  # Low, Medium, High
    # columns keep the store's lowercase names
    due_date = Column("duedate", Date, nullable=True)
    completed_pomodoros = Column("completedpomodoros", Integer, nullable=False, default=0)
    work_duration = Column("workduration", Integer, nullable=False, default=25)
    break_duration = Column("breakduration", Integer, nullable=False, default=5)

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title}', completed={self.completed})>"
