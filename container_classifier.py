"""Can vs. sparkling-bottle classification for test-mode morph targets."""
import logging
from typing import Iterable, Literal, Optional

import config

logger = logging.getLogger(__name__)

ContainerType = Literal["can", "sparkling"]

CAN_KEYWORDS = ("can", "beverage can", "soda", "aluminum can", "tin can", "soft drink")
SPARKLING_KEYWORDS = (
    "sparkling water",
    "carbonated water",
    "seltzer",
    "mineral water",
    "water bottle",
    "plastic bottle",
)

CONTAINER_BRANDS = {
    "can": "Soda Can",
    "sparkling": "Sparkling Water",
}


def _mentions(texts: Iterable[str], keywords: Iterable[str]) -> bool:
    keywords = tuple(keywords)
    return any(keyword in text.lower() for text in texts for keyword in keywords)


class ContainerClassifier:
    """
    Classifies the scanned container from label/object/text evidence.

    Labels are weak evidence and geometry is strong evidence, so the
    label-based guess is re-checked against the detected aspect ratio.
    """

    def __init__(
        self,
        can_max_aspect: float = config.CAN_TO_SPARKLING_ASPECT,
        sparkling_min_aspect: float = config.SPARKLING_TO_CAN_ASPECT,
    ):
        """
        Args:
            can_max_aspect: height/width above which a "can" is really a bottle
            sparkling_min_aspect: height/width below which a bottle is really a can
        """
        self.can_max_aspect = can_max_aspect
        self.sparkling_min_aspect = sparkling_min_aspect

    def classify(
        self,
        labels: Iterable[str],
        object_names: Iterable[str],
        texts: Iterable[str],
    ) -> Optional[ContainerType]:
        """Guess the container type from keywords. Cans win over bottles."""
        labels = list(labels)
        object_names = list(object_names)

        if _mentions(labels, CAN_KEYWORDS) or _mentions(object_names, CAN_KEYWORDS):
            return "can"
        if (
            _mentions(labels, SPARKLING_KEYWORDS)
            or _mentions(object_names, SPARKLING_KEYWORDS)
            or _mentions(texts, SPARKLING_KEYWORDS)
        ):
            return "sparkling"
        return None

    def correct_by_aspect(
        self,
        container: Optional[ContainerType],
        aspect_ratio: Optional[float],
    ) -> Optional[ContainerType]:
        """
        Flip the classification when the box shape contradicts it.

        Args:
            container: Keyword-based classification
            aspect_ratio: height/width of the detected region

        Returns:
            Possibly corrected classification
        """
        if container is None or not aspect_ratio:
            return container

        if container == "can" and aspect_ratio > self.can_max_aspect:
            logger.info("Can detected but aspect %.2f suggests a bottle, switching to sparkling", aspect_ratio)
            return "sparkling"
        if container == "sparkling" and aspect_ratio < self.sparkling_min_aspect:
            logger.info("Bottle detected but aspect %.2f suggests a can, switching to can", aspect_ratio)
            return "can"
        return container
