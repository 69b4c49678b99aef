from datetime import datetime

from .errors import (
    CourseHasActiveStudents,
    CourseNotFound,
    InvalidLessonCount,
    InvalidPrice,
    InvalidTitle,
    NotCertifiedInstructor,
    Unauthorized,
)
from .models import MAX_LESSONS, Course, EventName
from .storage import MarketplaceStorage


def require_course(storage: MarketplaceStorage, course_id: int) -> Course:
    course = storage.courses.get(course_id)
    if course is None or course.deleted:
        raise CourseNotFound(f"Course {course_id} not found")
    return course


def require_owner(course: Course, caller: str) -> None:
    if course.instructor != caller:
        raise Unauthorized(f"{caller} does not own course {course.id}")


def _validate_price(price: int, max_price: int) -> None:
    if not 0 < price < max_price:
        raise InvalidPrice(f"Price {price} outside (0, {max_price})")


def _validate_lessons(total_lessons: int) -> None:
    if not 0 < total_lessons < MAX_LESSONS:
        raise InvalidLessonCount(f"Lesson count {total_lessons} outside (0, 2**96)")


def _validate_title(title: str) -> None:
    if not title or not title.strip():
        raise InvalidTitle("Course title cannot be empty")


def active_students(storage: MarketplaceStorage, course_id: int) -> list[str]:
    return [
        buyer for buyer in storage.course_students.get(course_id, [])
        if not storage.purchases[(buyer, course_id)].refunded
    ]


def create_course(
    storage: MarketplaceStorage,
    instructor: str,
    title: str,
    price: int,
    total_lessons: int,
    max_price: int,
    now: datetime,
) -> Course:
    if instructor not in storage.certified_instructors:
        raise NotCertifiedInstructor(f"{instructor} is not a certified instructor")
    _validate_title(title)
    _validate_price(price, max_price)
    _validate_lessons(total_lessons)

    course = Course(
        id=storage.next_course_id,
        instructor=instructor,
        title=title,
        price=price,
        total_lessons=total_lessons,
        published=True,
        created_at=now,
    )
    storage.courses[course.id] = course
    storage.next_course_id += 1
    storage.instructor_courses.setdefault(instructor, []).append(course.id)
    storage.emit(EventName.COURSE_CREATED, now, course_id=course.id, instructor=instructor, price=price)
    return course


def update_course(storage: MarketplaceStorage, caller: str, course_id: int, title: str, total_lessons: int, now: datetime) -> Course:
    course = require_course(storage, course_id)
    require_owner(course, caller)
    _validate_title(title)
    _validate_lessons(total_lessons)

    course.title = title
    course.total_lessons = total_lessons
    storage.emit(EventName.COURSE_UPDATED, now, course_id=course_id, title=title, total_lessons=total_lessons)
    return course


def update_price(storage: MarketplaceStorage, caller: str, course_id: int, price: int, max_price: int, now: datetime) -> Course:
    course = require_course(storage, course_id)
    require_owner(course, caller)
    _validate_price(price, max_price)

    course.price = price
    storage.emit(EventName.COURSE_UPDATED, now, course_id=course_id, price=price)
    return course


def set_published(storage: MarketplaceStorage, caller: str, course_id: int, published: bool, now: datetime) -> Course:
    course = require_course(storage, course_id)
    require_owner(course, caller)

    course.published = published
    storage.emit(EventName.COURSE_UPDATED, now, course_id=course_id, published=published)
    return course


def delete_course(storage: MarketplaceStorage, caller: str, course_id: int, now: datetime) -> Course:
    course = require_course(storage, course_id)
    require_owner(course, caller)
    students = active_students(storage, course_id)
    if students:
        raise CourseHasActiveStudents(f"Course {course_id} has {len(students)} active students")

    course.deleted = True
    course.published = False
    storage.emit(EventName.COURSE_UPDATED, now, course_id=course_id, deleted=True)
    return course
