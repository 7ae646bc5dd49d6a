import re
from typing import Dict, Optional

tag_form = re.compile(r'<\S+>')


def is_template(path: str) -> bool:
    return any(tag_form.fullmatch(element) for element in path.split('/'))


def compare_paths(template: str, path: str) -> Optional[Dict[str, str]]:
    """
    Matches path against a template like /download/<name>. Returns values
    of the tags or None if path doesn't match. Tag never matches an empty
    element or more than one element
    """

    kwargs = {}
    template_elements, path_elements = template.split('/'), path.split('/')

    if len(template_elements) != len(path_elements):
        return None

    for template_element, path_element in zip(template_elements, path_elements):
        if tag_form.fullmatch(template_element):
            if not path_element:
                return None

            kwargs[template_element[1:-1]] = path_element
        elif template_element != path_element:
            return None  # usual element, but doesn't matches

    return kwargs
