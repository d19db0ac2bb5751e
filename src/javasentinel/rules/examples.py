from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RuleExample:
    language: str
    bad: str
    good: str | None = None
    notes: str | None = None


EXAMPLES: dict[str, RuleExample] = {
    "G01": RuleExample(
        language="java",
        bad=(
            "class order_item {\n"
            "    static final int maxQty = 10;\n"
            "    private int Item_Count;\n"
            "}\n"
        ),
        good=(
            "class OrderItem {\n"
            "    static final int MAX_QTY = 10;\n"
            "    private int itemCount;\n"
            "}\n"
        ),
        notes="Logger fields (`private static final Logger log`) and `serialVersionUID` are accepted as-is.",
    ),
    "G02": RuleExample(
        language="java",
        bad=(
            "List<String> names = new ArrayList<>();\n"
            "for (User u : users) {\n"
            "    if (u.isActive()) {\n"
            "        names.add(u.getName());\n"
            "    }\n"
            "}\n"
        ),
        good=(
            "List<String> names = users.stream()\n"
            "        .filter(u -> u.isActive())\n"
            "        .map(u -> u.getName())\n"
            "        .collect(Collectors.toList());\n"
        ),
        notes="Loops with break/continue/return, extra side effects or a second use of the collection are left alone.",
    ),
    "G03": RuleExample(
        language="java",
        bad=(
            "String home = System.getenv(\"HOME\");\n"
            "return home.length();\n"
        ),
        good=(
            "String home = System.getenv(\"HOME\");\n"
            "if (home == null) {\n"
            "    return 0;\n"
            "}\n"
            "return home.length();\n"
        ),
        notes="Methods that `return null` are also reported (info) with an `Optional<T>` return type suggestion.",
    ),
    "G04": RuleExample(
        language="java",
        bad=(
            "class Order {\n"
            "    private final List<String> items;\n"
            "    Order(List<String> items) { this.items = items; }\n"
            "}\n"
        ),
        good=(
            "class Order {\n"
            "    private final List<String> items;\n"
            "    Order(List<String> items) { this.items = new ArrayList<>(items); }\n"
            "}\n"
        ),
        notes="Getters that hand out a mutable field are reported too.",
    ),
    "G05": RuleExample(
        language="java",
        bad=(
            "try {\n"
            "    read(path);\n"
            "} catch (IOException e) {\n"
            "    log(e);\n"
            "} catch (FileNotFoundException e) {\n"
            "    missing(e);\n"
            "}\n"
        ),
        good=(
            "try {\n"
            "    read(path);\n"
            "} catch (FileNotFoundException e) {\n"
            "    missing(e);\n"
            "} catch (IOException e) {\n"
            "    log(e);\n"
            "}\n"
        ),
        notes="Checked exceptions thrown but neither caught nor declared are reported as errors.",
    ),
    "G06": RuleExample(
        language="java",
        bad="Vector<String> queue = new Vector<>();\nwhile (!queue.isEmpty()) handle(queue.remove(0));\n",
        good="Deque<String> queue = new ArrayDeque<>();\nwhile (!queue.isEmpty()) handle(queue.pollFirst());\n",
    ),
    "G07": RuleExample(
        language="java",
        bad="public class Parser {\n    public int depth;\n    public void skipWhitespace() { }\n}\n",
        good="public class Parser {\n    private int depth;\n    private void skipWhitespace() { }\n}\n",
        notes="Only reported when scanning a whole directory, since single files cannot show outside usage.",
    ),
    "G08": RuleExample(
        language="java",
        bad="private final ArrayList<String> names = new ArrayList<>();\n",
        good="private final List<String> names = new ArrayList<>();\n",
        notes="Suggested only when every member used on the value exists on the interface.",
    ),
    "G09": RuleExample(
        language="java",
        bad="interface Greeter { String greet(); }\nclass DefaultGreeter implements Greeter { ... }\n",
        good="class Greeter { String greet() { ... } }\n",
        notes="`@FunctionalInterface` types are exempt.",
    ),
    "G10": RuleExample(
        language="java",
        bad=(
            "@Override\n"
            "public boolean equals(Object o) { ... }\n"
        ),
        good=(
            "@Override\n"
            "public boolean equals(Object o) { ... }\n"
            "\n"
            "@Override\n"
            "public int hashCode() {\n"
            "    return Objects.hash(id, name);\n"
            "}\n"
        ),
    ),
}
